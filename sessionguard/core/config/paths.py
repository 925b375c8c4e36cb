from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ConfigFsPaths:
    root: str = "."

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    @property
    def security(self) -> str:
        return os.path.join(self.config_dir, "security.json")

    @property
    def sessions(self) -> str:
        return os.path.join(self.config_dir, "sessions.json")

    @property
    def store(self) -> str:
        return os.path.join(self.config_dir, "store.json")

    @property
    def web(self) -> str:
        return os.path.join(self.config_dir, "web.json")

    @property
    def events(self) -> str:
        return os.path.join(self.config_dir, "events.json")

    def resolve(self, path: str) -> str:
        """Relative paths in config are relative to the root."""
        return path if os.path.isabs(path) else os.path.join(self.root, path)
