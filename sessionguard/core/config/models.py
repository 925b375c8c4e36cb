from __future__ import annotations

from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

from sessionguard.core.events.bus import EventBusConfig


class ConflictPolicy(str, Enum):
    prevent = "prevent"
    force = "force"
    ask = "ask"


class LockoutConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=5, ge=1, le=1000)
    window_minutes: int = Field(default=15, ge=1, le=24 * 60)

    @property
    def window_ms(self) -> int:
        return int(self.window_minutes) * 60 * 1000


class SessionsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_duration_ms: int = Field(default=24 * 60 * 60 * 1000, ge=1000)
    sweep_interval_seconds: float = Field(default=300.0, ge=0.05, le=86400.0)
    touch_on_get: bool = True


class ConflictConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_policy: ConflictPolicy = ConflictPolicy.prevent


class SharedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_max_sessions_by_type: Dict[str, int] = Field(
        default_factory=lambda: {"testing": 10, "demo": 5, "giveaway": 50, "team": 20, "unlimited": 999}
    )
    fallback_max_sessions: int = Field(default=5, ge=1)
    near_limit_ratio: float = Field(default=0.8, gt=0.0, le=1.0)


class SecurityConfig(BaseModel):
    """config/security.json"""

    model_config = ConfigDict(extra="forbid")

    lockout: LockoutConfig = Field(default_factory=LockoutConfig)
    conflict: ConflictConfig = Field(default_factory=ConflictConfig)
    shared: SharedConfig = Field(default_factory=SharedConfig)
    audit_log_path: str = "logs/security.jsonl"


class StoreConfig(BaseModel):
    """config/store.json"""

    model_config = ConfigDict(extra="forbid")

    backend: str = Field(default="json", pattern="^(json|memory)$")
    path: str = "data/store.json"
    credential_timeout_seconds: float = Field(default=2.0, gt=0.0, le=60.0)
    seed_defaults: bool = True


class WebConfig(BaseModel):
    """config/web.json"""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    bind_host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    security: SecurityConfig = Field(default_factory=SecurityConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    events: EventBusConfig = Field(default_factory=EventBusConfig)
