from __future__ import annotations

import time
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


def _now_ms() -> int:
    return int(time.time() * 1000)


class IdentityRecord(BaseModel):
    """
    A regular, individually credentialed account. The engine only reads it;
    last_login is written back through the credential store.
    """

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1, max_length=120)
    secret: str = Field(min_length=1, repr=False)
    email: str = ""
    role: str = "user"
    capabilities: List[str] = Field(default_factory=list)
    api_access: bool = False
    durations: Dict[str, int] = Field(default_factory=dict)
    default_profile: Optional[str] = None
    max_profile: Optional[str] = None
    created_at: int = Field(default_factory=_now_ms)
    last_login: Optional[int] = None

    @model_validator(mode="after")
    def _positive_durations(self) -> "IdentityRecord":
        bad = [k for k, v in self.durations.items() if int(v) <= 0]
        if bad:
            raise ValueError(f"durations must be positive: {bad}")
        return self


class SharedAccount(IdentityRecord):
    """
    A universal account: one credential, many simultaneous users, bounded by
    max_sessions instead of exclusivity.
    """

    shared_type: str = "testing"
    max_sessions: int = Field(default=5, ge=1)
    description: str = ""
    features: List[str] = Field(default_factory=list)
    total_logins: int = 0
    last_access: Optional[int] = None
    updated_at: Optional[int] = None


ROLE_CAPABILITIES: Dict[str, List[str]] = {
    "administrator": ["full_access", "api_management", "user_management", "chat_access", "model_access", "api_access"],
    "user": ["chat_access", "model_access", "api_access"],
    "guest": ["chat_access", "model_access", "api_access"],
}

ROLE_DURATIONS: Dict[str, Dict[str, int]] = {
    "administrator": {"1hour": HOUR_MS, "8hours": 8 * HOUR_MS, "24hours": DAY_MS},
    "user": {"30min": 30 * MINUTE_MS, "2hours": 2 * HOUR_MS, "8hours": 8 * HOUR_MS},
    "guest": {"15min": 15 * MINUTE_MS, "30min": 30 * MINUTE_MS, "1hour": HOUR_MS},
}


def default_identities() -> List[IdentityRecord]:
    return [
        IdentityRecord(
            name="admin",
            secret="admin123",
            email="admin@example.com",
            role="administrator",
            api_access=True,
            capabilities=["full_access", "api_management", "user_management"],
            durations={
                "15min": 15 * MINUTE_MS,
                "1hour": HOUR_MS,
                "8hours": 8 * HOUR_MS,
                "24hours": DAY_MS,
                "7days": 7 * DAY_MS,
                "30days": 30 * DAY_MS,
            },
            default_profile="24hours",
            max_profile="30days",
        ),
        IdentityRecord(
            name="demo",
            secret="demo123",
            email="demo@example.com",
            role="user",
            api_access=True,
            capabilities=["chat_access"],
            durations={"15min": 15 * MINUTE_MS, "1hour": HOUR_MS, "8hours": 8 * HOUR_MS, "24hours": DAY_MS},
            default_profile="8hours",
            max_profile="24hours",
        ),
        IdentityRecord(
            name="guest",
            secret="guest123",
            email="guest@example.com",
            role="guest",
            api_access=False,
            capabilities=["limited_chat"],
            durations={"15min": 15 * MINUTE_MS, "1hour": HOUR_MS, "4hours": 4 * HOUR_MS},
            default_profile="1hour",
            max_profile="4hours",
        ),
    ]


def default_shared_accounts() -> List[SharedAccount]:
    common = ["chat_access", "model_access", "api_access"]
    return [
        SharedAccount(
            name="test",
            secret="test123",
            email="test@example.com",
            shared_type="testing",
            max_sessions=10,
            api_access=True,
            capabilities=list(common),
            durations={"15min": 15 * MINUTE_MS, "1hour": HOUR_MS, "4hours": 4 * HOUR_MS},
            default_profile="1hour",
            max_profile="4hours",
            description="Shared testing account - up to 10 concurrent users",
            features=["Full chat access", "All models", "API access", "Testing purpose"],
        ),
        SharedAccount(
            name="presenter",
            secret="demo2024",
            email="presenter@example.com",
            shared_type="demo",
            max_sessions=5,
            api_access=True,
            capabilities=list(common),
            durations={"30min": 30 * MINUTE_MS, "2hours": 2 * HOUR_MS, "8hours": 8 * HOUR_MS},
            default_profile="2hours",
            max_profile="8hours",
            description="Demo account for presentations - up to 5 concurrent users",
            features=["Full chat access", "All models", "API access", "Demo presentations"],
        ),
        SharedAccount(
            name="giveaway",
            secret="free2024",
            email="giveaway@example.com",
            shared_type="giveaway",
            max_sessions=50,
            api_access=True,
            capabilities=list(common),
            durations={"15min": 15 * MINUTE_MS, "30min": 30 * MINUTE_MS, "1hour": HOUR_MS},
            default_profile="30min",
            max_profile="1hour",
            description="Free giveaway account - up to 50 concurrent users",
            features=["Full chat access", "All models", "API access", "Community access"],
        ),
        SharedAccount(
            name="team",
            secret="team2024",
            email="team@example.com",
            shared_type="team",
            max_sessions=20,
            api_access=True,
            capabilities=common + ["team_features"],
            durations={"1hour": HOUR_MS, "8hours": 8 * HOUR_MS, "24hours": DAY_MS},
            default_profile="8hours",
            max_profile="24hours",
            description="Team collaboration account - up to 20 concurrent users",
            features=["Team collaboration", "Extended sessions", "All models", "API access"],
        ),
    ]
