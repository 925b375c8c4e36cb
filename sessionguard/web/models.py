from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from sessionguard.core.config.models import ConflictPolicy


class ClientDescriptor(BaseModel):
    user_agent: Optional[str] = Field(default=None, max_length=512)
    platform: Optional[str] = Field(default=None, max_length=128)
    language: Optional[str] = Field(default=None, max_length=32)


class LoginRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    secret: str = Field(min_length=1, max_length=512)
    duration_profile: Optional[str] = Field(default=None, max_length=64)
    client: Optional[ClientDescriptor] = None


class ResolveRequest(BaseModel):
    action: str = Field(pattern="^(cancel|force|prevent)$")


class ConflictPolicyRequest(BaseModel):
    policy: ConflictPolicy


class ConflictPolicyResponse(BaseModel):
    policy: ConflictPolicy


class SessionListResponse(BaseModel):
    sessions: List[Dict[str, Any]]


class CountResponse(BaseModel):
    count: int
