from __future__ import annotations

import json
import time
import uuid
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sessionguard.core.events.redaction import redact


SESSIONS_CHANGED = "sessions.changed"
SESSION_SWITCHED = "session.switched"
AUTH_LOCKED_OUT = "auth.locked_out"
CONFLICT_POLICY_CHANGED = "conflict.policy_changed"
CONFLICT_FORCED_LOGOUT = "conflict.forced_logout"
SHARED_LIMIT_REACHED = "shared.limit_reached"


class EventSeverity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class EventSource(str, Enum):
    registry = "registry"
    lockout = "lockout"
    conflict = "conflict"
    shared = "shared"
    selector = "selector"
    auth = "auth"
    web = "web"
    events = "events"


class BaseEvent(BaseModel):
    """
    Change notification. Payloads are hints: consumers re-read the registry
    instead of trusting them.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    event_type: str
    timestamp: float = Field(default_factory=time.time)
    source: EventSource
    severity: EventSeverity = EventSeverity.INFO
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_type")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = str(v or "").strip()
        if not v:
            raise ValueError("event_type required")
        return v

    @field_validator("payload")
    @classmethod
    def _jsonable_and_redacted(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(v, dict):
            raise ValueError("payload must be an object")
        safe = redact(v)
        try:
            json.dumps(safe, ensure_ascii=False)
        except Exception as e:  # noqa: BLE001
            raise ValueError("payload must be JSON-serializable") from e
        return safe


def sessions_changed(reason: str, **payload: Any) -> BaseEvent:
    return BaseEvent(event_type=SESSIONS_CHANGED, source=EventSource.registry, payload={"reason": reason, **payload})
