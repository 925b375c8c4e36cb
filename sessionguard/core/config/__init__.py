from sessionguard.core.config.manager import ConfigManager
from sessionguard.core.config.models import (
    AppConfig,
    ConflictConfig,
    ConflictPolicy,
    LockoutConfig,
    SecurityConfig,
    SessionsConfig,
    SharedConfig,
    StoreConfig,
    WebConfig,
)
from sessionguard.core.config.paths import ConfigFsPaths

__all__ = [
    "AppConfig",
    "ConfigFsPaths",
    "ConfigManager",
    "ConflictConfig",
    "ConflictPolicy",
    "LockoutConfig",
    "SecurityConfig",
    "SessionsConfig",
    "SharedConfig",
    "StoreConfig",
    "WebConfig",
]
