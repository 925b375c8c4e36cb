from __future__ import annotations

import json

from sessionguard.core.config import ConfigManager
from sessionguard.core.config.paths import ConfigFsPaths


def main() -> None:
    cm = ConfigManager(fs=ConfigFsPaths("."), logger=None, read_only=True)
    cfg = cm.load_all()
    print(json.dumps(cfg.model_dump(mode="json"), indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
