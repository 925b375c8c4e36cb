from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from sessionguard.core.events.redaction import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class SessionGuardError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.WARN
    retryable: bool = False
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "retryable": bool(self.retryable),
            "context": redact(self.context or {}),
        }


# ---- authentication rejections ----
class InvalidCredentialError(SessionGuardError):
    # unknown identity and wrong secret share one message
    def __init__(self, user_message: str = "Invalid username or password.", **ctx: Any):
        super().__init__("invalid_credential", user_message, severity=Severity.WARN, retryable=False, context=ctx)


class LockedOutError(SessionGuardError):
    def __init__(self, *, remaining_ms: int, ends_at: int, user_message: Optional[str] = None, **ctx: Any):
        minutes = max(1, -(-int(remaining_ms) // 60_000))
        msg = user_message or f"Account locked. Try again in {minutes} minutes."
        super().__init__("locked_out", msg, severity=Severity.WARN, retryable=True, context={"remaining_ms": int(remaining_ms), "ends_at": int(ends_at), **ctx})
        self.remaining_ms = int(remaining_ms)
        self.ends_at = int(ends_at)


class SessionConflictError(SessionGuardError):
    def __init__(self, *, identity: str, existing: List[Any], user_message: Optional[str] = None):
        msg = user_message or f'User "{identity}" is already logged in from another location.'
        super().__init__("session_conflict", msg, severity=Severity.WARN, retryable=False, context={"identity": identity, "existing_count": len(existing)})
        self.identity = identity
        self.existing = list(existing)


class ConflictChoiceRequiredError(SessionGuardError):
    def __init__(self, *, identity: str, existing: List[Any], user_message: Optional[str] = None):
        msg = user_message or f'User "{identity}" is already logged in. Choose how to proceed.'
        super().__init__("session_conflict_choice", msg, severity=Severity.INFO, retryable=True, context={"identity": identity, "existing_count": len(existing)})
        self.identity = identity
        self.existing = list(existing)


class ConcurrencyLimitReachedError(SessionGuardError):
    def __init__(self, *, identity: str, current: int, maximum: int, shared_type: Optional[str] = None):
        msg = f'Shared account "{identity}" has reached its limit of {maximum} concurrent users. Please try again later.'
        super().__init__(
            "session_limit_reached",
            msg,
            severity=Severity.WARN,
            retryable=True,
            context={"identity": identity, "current": int(current), "max": int(maximum), "shared_type": shared_type},
        )
        self.identity = identity
        self.current = int(current)
        self.maximum = int(maximum)
        self.shared_type = shared_type


class NoPendingConflictError(SessionGuardError):
    def __init__(self, user_message: str = "There is no pending login conflict to resolve.", **ctx: Any):
        super().__init__("no_pending_conflict", user_message, severity=Severity.INFO, retryable=False, context=ctx)


class UserCancelledError(SessionGuardError):
    def __init__(self, user_message: str = "Login cancelled by user.", **ctx: Any):
        super().__init__("user_cancelled", user_message, severity=Severity.INFO, retryable=False, context=ctx)


class StoreUnavailableError(SessionGuardError):
    def __init__(self, user_message: str = "The credential store is unavailable. Please retry.", **ctx: Any):
        super().__init__("store_unavailable", user_message, severity=Severity.ERROR, retryable=True, context=ctx)


# ---- outer surfaces ----
class ConfigError(SessionGuardError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, retryable=False, context=ctx)


class ValidationError(SessionGuardError):
    def __init__(self, user_message: str = "Invalid request.", **ctx: Any):
        super().__init__("validation_error", user_message, severity=Severity.WARN, retryable=False, context=ctx)


class NotFoundError(SessionGuardError):
    def __init__(self, user_message: str = "Not found.", **ctx: Any):
        super().__init__("not_found", user_message, severity=Severity.INFO, retryable=False, context=ctx)
