from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sessionguard.core.errors import (
    ConcurrencyLimitReachedError,
    ConflictChoiceRequiredError,
    InvalidCredentialError,
    LockedOutError,
    NoPendingConflictError,
    SessionConflictError,
    SessionGuardError,
    StoreUnavailableError,
    UserCancelledError,
)
from sessionguard.core.sessions.models import Session, SessionSummary


class OutcomeKind(str, Enum):
    success = "success"
    invalid_credential = "invalid_credential"
    locked_out = "locked_out"
    conflict_prevented = "conflict_prevented"
    conflict_pending_choice = "conflict_pending_choice"
    limit_reached = "limit_reached"
    user_cancelled = "user_cancelled"
    no_pending_conflict = "no_pending_conflict"
    store_unavailable = "store_unavailable"


_KIND_BY_ERROR = (
    (InvalidCredentialError, OutcomeKind.invalid_credential),
    (LockedOutError, OutcomeKind.locked_out),
    (SessionConflictError, OutcomeKind.conflict_prevented),
    (ConflictChoiceRequiredError, OutcomeKind.conflict_pending_choice),
    (ConcurrencyLimitReachedError, OutcomeKind.limit_reached),
    (UserCancelledError, OutcomeKind.user_cancelled),
    (NoPendingConflictError, OutcomeKind.no_pending_conflict),
    (StoreUnavailableError, OutcomeKind.store_unavailable),
)


class AuthOutcome(BaseModel):
    """
    Result of authenticate() / resolve_pending_conflict(). Rejections carry
    the structured data a display layer needs (counts, timestamps, session
    summaries) instead of a preformatted screen.
    """

    model_config = ConfigDict(extra="forbid")

    kind: OutcomeKind
    ok: bool = False
    message: str = ""
    code: str = ""
    identity: Optional[str] = None
    shared: bool = False
    session: Optional[Session] = None
    terminated_sessions: int = 0
    forced_logout: bool = False
    existing_sessions: List[SessionSummary] = Field(default_factory=list)
    current: Optional[int] = None
    max: Optional[int] = None
    shared_type: Optional[str] = None
    lockout_remaining_ms: Optional[int] = None
    lockout_ends_at: Optional[int] = None
    retryable: bool = False

    @classmethod
    def success(cls, session: Session, *, terminated_sessions: int = 0, forced_logout: bool = False) -> "AuthOutcome":
        msg = "Login successful."
        if forced_logout and terminated_sessions:
            msg = f"Login successful. {terminated_sessions} existing session(s) were logged out."
        return cls(
            kind=OutcomeKind.success,
            ok=True,
            message=msg,
            code="success",
            identity=session.name,
            shared=session.shared,
            session=session,
            terminated_sessions=int(terminated_sessions),
            forced_logout=bool(forced_logout),
        )

    @classmethod
    def from_error(cls, err: SessionGuardError, *, identity: Optional[str] = None) -> "AuthOutcome":
        kind = next((k for etype, k in _KIND_BY_ERROR if isinstance(err, etype)), None)
        if kind is None:
            raise TypeError(f"no outcome for {type(err).__name__}")
        out = cls(kind=kind, message=err.user_message, code=err.code, identity=identity, retryable=bool(err.retryable))
        if isinstance(err, LockedOutError):
            out.lockout_remaining_ms = err.remaining_ms
            out.lockout_ends_at = err.ends_at
        elif isinstance(err, (SessionConflictError, ConflictChoiceRequiredError)):
            out.identity = err.identity
            out.existing_sessions = list(err.existing)
        elif isinstance(err, ConcurrencyLimitReachedError):
            out.identity = err.identity
            out.shared = True
            out.current = err.current
            out.max = err.maximum
            out.shared_type = err.shared_type
        return out
