from __future__ import annotations

import uuid
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sessionguard.core.credentials.models import IdentityRecord, SharedAccount


class Namespace(str, Enum):
    regular = "regular"
    shared = "shared"


class ClientInfo(BaseModel):
    """Opaque descriptor of the client a session was issued to."""

    model_config = ConfigDict(extra="ignore")

    client_id: str = "default"
    user_agent: str = ""
    platform: str = ""
    language: str = ""


class IdentitySnapshot(BaseModel):
    """
    Identity attributes frozen at login. A later edit of the identity record
    does not reach sessions that were already issued.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    role: str = "user"
    capabilities: List[str] = Field(default_factory=list)
    api_access: bool = False
    shared: bool = False
    shared_type: Optional[str] = None
    description: str = ""
    features: List[str] = Field(default_factory=list)
    durations: Dict[str, int] = Field(default_factory=dict)
    default_profile: Optional[str] = None
    max_profile: Optional[str] = None

    @property
    def namespace(self) -> Namespace:
        return Namespace.shared if self.shared else Namespace.regular

    @classmethod
    def from_identity(cls, rec: IdentityRecord) -> "IdentitySnapshot":
        shared = isinstance(rec, SharedAccount)
        return cls(
            name=rec.name,
            role=rec.role,
            capabilities=list(rec.capabilities),
            api_access=bool(rec.api_access),
            shared=shared,
            shared_type=rec.shared_type if shared else None,
            description=rec.description if shared else "",
            features=list(rec.features) if shared else [],
            durations=dict(rec.durations),
            default_profile=rec.default_profile,
            max_profile=rec.max_profile,
        )


class Session(BaseModel):
    model_config = ConfigDict(extra="ignore")

    session_id: str = Field(default_factory=lambda: f"sess_{uuid.uuid4().hex}")
    identity: IdentitySnapshot
    login_time: int
    last_activity: int
    expires_at: int
    duration_profile: str
    duration_ms: int
    client: ClientInfo = Field(default_factory=ClientInfo)
    active: bool = True

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def shared(self) -> bool:
        return self.identity.shared

    def is_valid(self, now_ms: int) -> bool:
        return bool(self.active) and int(now_ms) < int(self.expires_at)


class SessionSummary(BaseModel):
    """What a conflict outcome tells the caller about one existing session."""

    model_config = ConfigDict(extra="forbid")

    session_id: str
    identity: str
    login_time: int
    last_activity: int
    expires_at: int
    browser: str
    time_remaining: str


class SessionView(BaseModel):
    """One row of a client's session switcher."""

    model_config = ConfigDict(extra="forbid")

    session_id: str
    identity: str
    role: str
    shared: bool = False
    is_current: bool = False
    login_time: int
    last_activity: int
    expires_at: int
    remaining_ms: int
    time_remaining: str
    urgency: Optional[str] = None
    browser: str
