from __future__ import annotations

import os
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from sessionguard.core.config.io import atomic_write_json, quarantine_corrupt, read_json_file
from sessionguard.core.config.models import AppConfig, SecurityConfig, SessionsConfig, StoreConfig, WebConfig
from sessionguard.core.config.paths import ConfigFsPaths
from sessionguard.core.errors import ConfigError
from sessionguard.core.events.bus import EventBusConfig


_SECTIONS: Dict[str, Type[BaseModel]] = {
    "security": SecurityConfig,
    "sessions": SessionsConfig,
    "store": StoreConfig,
    "web": WebConfig,
    "events": EventBusConfig,
}


class ConfigManager:
    """
    One JSON file per section under config/. Missing files are created with
    defaults, unreadable ones are moved to config/backups/ and replaced.
    Values that parse but fail validation are a hard ConfigError.
    """

    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger=None, read_only: bool = False):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger
        self.read_only = read_only
        self._cfg: Optional[AppConfig] = None

    def load_all(self) -> AppConfig:
        if not self.read_only:
            os.makedirs(self.fs.config_dir, exist_ok=True)
        raw: Dict[str, Any] = {}
        for section, model in _SECTIONS.items():
            raw[section] = self._load_section(section, model)
        try:
            cfg = AppConfig.model_validate(raw)
        except PydanticValidationError as e:
            raise ConfigError("Configuration is invalid.", errors=e.errors(include_url=False)) from e
        self._cfg = cfg
        return cfg

    def get(self) -> AppConfig:
        if self._cfg is None:
            return self.load_all()
        return self._cfg

    def save(self, section: str, data: Dict[str, Any]) -> AppConfig:
        model = _SECTIONS.get(section)
        if model is None:
            raise ConfigError("Unknown config section.", section=section)
        if self.read_only:
            raise ConfigError("Config is read-only.", section=section)
        try:
            validated = model.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigError("Configuration is invalid.", section=section, errors=e.errors(include_url=False)) from e
        atomic_write_json(self._path(section), validated.model_dump(mode="json"))
        if self.logger:
            self.logger.info("config section %s saved", section)
        return self.load_all()

    # ---- internals ----
    def _path(self, section: str) -> str:
        return str(getattr(self.fs, section))

    def _load_section(self, section: str, model: Type[BaseModel]) -> Dict[str, Any]:
        path = self._path(section)
        rr = read_json_file(path)
        if rr.ok:
            return rr.data
        if rr.error != "missing":
            moved = None if self.read_only else quarantine_corrupt(path, self.fs.backups_dir)
            if self.logger:
                self.logger.error("config %s unreadable (%s); using defaults (backup: %s)", path, rr.error, moved)
        defaults = model().model_dump(mode="json")
        if not self.read_only:
            atomic_write_json(path, defaults)
        return defaults
