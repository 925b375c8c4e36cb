from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from sessionguard.core.auth.outcomes import AuthOutcome, OutcomeKind
from sessionguard.core.config.models import ConflictPolicy
from sessionguard.core.conflict.engine import Admission, ConflictPolicyEngine
from sessionguard.core.credentials.models import IdentityRecord, SharedAccount
from sessionguard.core.credentials.store import CredentialStore, secrets_match
from sessionguard.core.errors import InvalidCredentialError, LockedOutError, SessionGuardError, StoreUnavailableError, ValidationError
from sessionguard.core.lockout.guard import LockoutGuard
from sessionguard.core.security_events import SecurityAuditLogger
from sessionguard.core.selector import SessionSelector
from sessionguard.core.sessions.models import ClientInfo, IdentitySnapshot, Session, SessionView
from sessionguard.core.sessions.registry import SessionRegistry
from sessionguard.core.shared.limiter import ConcurrencyLimiter


@dataclass
class LoginAttempt:
    """State threaded through the check chain for one authenticate() call."""

    name: str
    secret: str
    duration_profile: Optional[str] = None
    client: ClientInfo = field(default_factory=ClientInfo)
    shared_account: Optional[SharedAccount] = None
    identity: Optional[IdentityRecord] = None
    admission: Optional[Admission] = None


# A check either returns (continue) or raises a SessionGuardError (reject).
Check = Callable[[LoginAttempt], None]


def record_login(credentials: CredentialStore, name: str, timestamp: int, logger=None) -> None:  # noqa: ANN001
    # the session already exists here; a failed write is only logged
    try:
        credentials.record_login_success(name, timestamp)
    except StoreUnavailableError as e:
        if logger:
            logger.warning("could not record login for %s: %s", name, e.context.get("reason"))


class SharedAccountResolution:
    """Shared accounts are looked up first so they never reach exclusivity rules."""

    def __init__(self, credentials: CredentialStore):
        self.credentials = credentials

    def __call__(self, attempt: LoginAttempt) -> None:
        attempt.shared_account = self.credentials.lookup_shared(attempt.name)


class LockoutCheck:
    def __init__(self, lockout: LockoutGuard):
        self.lockout = lockout

    def __call__(self, attempt: LoginAttempt) -> None:
        if self.lockout.is_locked_out(attempt.name):
            raise LockedOutError(remaining_ms=self.lockout.remaining_ms(attempt.name), ends_at=self.lockout.lockout_ends_at(attempt.name))


class CredentialCheck:
    """
    Wrong secret and unknown name look the same to the caller and both count
    toward lockout. A good secret clears the identity's lockout record.
    """

    def __init__(self, credentials: CredentialStore, lockout: LockoutGuard):
        self.credentials = credentials
        self.lockout = lockout

    def __call__(self, attempt: LoginAttempt) -> None:
        if attempt.shared_account is not None:
            expected: Optional[str] = attempt.shared_account.secret
        else:
            attempt.identity = self.credentials.lookup(attempt.name)
            expected = attempt.identity.secret if attempt.identity is not None else None
        if expected is None or not secrets_match(attempt.secret, expected):
            self.lockout.record_failure(attempt.name)
            raise InvalidCredentialError()
        self.lockout.clear(attempt.name)


class AdmissionCheck:
    """Limiter for shared accounts, conflict policy for everyone else."""

    def __init__(self, credentials: CredentialStore, conflict: ConflictPolicyEngine, limiter: ConcurrencyLimiter, *, logger=None):
        self.credentials = credentials
        self.conflict = conflict
        self.limiter = limiter
        self.logger = logger

    def __call__(self, attempt: LoginAttempt) -> None:
        if attempt.shared_account is not None:
            session = self.limiter.admit(attempt.shared_account, attempt.secret, attempt.duration_profile, attempt.client)
            attempt.admission = Admission(session=session)
            return
        if attempt.identity is None:
            raise InvalidCredentialError()
        snapshot = IdentitySnapshot.from_identity(attempt.identity)
        attempt.admission = self.conflict.admit(snapshot, attempt.duration_profile, attempt.client)
        record_login(self.credentials, attempt.name, attempt.admission.session.login_time, self.logger)


def default_chain(
    *,
    credentials: CredentialStore,
    lockout: LockoutGuard,
    conflict: ConflictPolicyEngine,
    limiter: ConcurrencyLimiter,
    logger=None,
) -> List[Check]:
    return [
        SharedAccountResolution(credentials),
        LockoutCheck(lockout),
        CredentialCheck(credentials, lockout),
        AdmissionCheck(credentials, conflict, limiter, logger=logger),
    ]


class Authenticator:
    """
    Facade over the session engine. Every rejection comes back as a typed
    AuthOutcome; no policy error escapes authenticate() or
    resolve_pending_conflict(). An unknown resolve action is a caller
    error and raises ValidationError.
    """

    def __init__(
        self,
        *,
        checks: Sequence[Check],
        credentials: CredentialStore,
        registry: SessionRegistry,
        lockout: LockoutGuard,
        conflict: ConflictPolicyEngine,
        limiter: ConcurrencyLimiter,
        audit_logger: Optional[SecurityAuditLogger] = None,
        event_bus: Any = None,
        logger=None,
    ):
        self.checks = list(checks)
        self.credentials = credentials
        self.registry = registry
        self.lockout = lockout
        self.conflict = conflict
        self.limiter = limiter
        self.audit_logger = audit_logger
        self.event_bus = event_bus
        self.logger = logger

    def authenticate(
        self,
        name: str,
        secret: str,
        duration_profile: Optional[str] = None,
        client: Optional[ClientInfo] = None,
    ) -> AuthOutcome:
        attempt = LoginAttempt(name=str(name or "").strip(), secret=str(secret or ""), duration_profile=duration_profile, client=client or ClientInfo())
        try:
            if not attempt.name:
                raise InvalidCredentialError()
            for check in self.checks:
                check(attempt)
            if attempt.admission is None:
                raise InvalidCredentialError()
            out = AuthOutcome.success(
                attempt.admission.session,
                terminated_sessions=attempt.admission.terminated_sessions,
                forced_logout=attempt.admission.forced_logout,
            )
        except SessionGuardError as e:
            out = AuthOutcome.from_error(e, identity=attempt.name or None)
            out.shared = out.shared or attempt.shared_account is not None
        self._audit("auth.login", out, client_id=attempt.client.client_id, extra={"duration_profile": duration_profile})
        return out

    def resolve_pending_conflict(self, action: str) -> AuthOutcome:
        pending = self.conflict.pending()
        try:
            admission = self.conflict.resolve(str(action))
            record_login(self.credentials, admission.session.name, admission.session.login_time, self.logger)
            out = AuthOutcome.success(admission.session, terminated_sessions=admission.terminated_sessions, forced_logout=admission.forced_logout)
        except ValidationError:
            raise
        except SessionGuardError as e:
            out = AuthOutcome.from_error(e, identity=pending.identity if pending is not None else None)
        client_id = pending.client.client_id if pending is not None else None
        self._audit("auth.resolve_conflict", out, client_id=client_id, extra={"action": str(action)})
        return out

    # ---- sessions ----
    def selector(self, client_id: str = "default", *, on_switch: Optional[Callable[[Session], None]] = None) -> SessionSelector:
        return SessionSelector(self.registry, client_id, event_bus=self.event_bus, on_switch=on_switch, logger=self.logger)

    def switch_session(self, session_id: str, client_id: str = "default") -> Optional[Session]:
        return self.selector(client_id).switch_to(session_id)

    def list_sessions(self, client_id: str = "default") -> List[SessionView]:
        return self.selector(client_id).list_for_switching()

    def current_session(self, client_id: str = "default") -> Optional[Session]:
        return self.selector(client_id).current()

    def logout(self, client_id: str = "default") -> bool:
        return self.selector(client_id).logout_current()

    def terminate_session(self, session_id: str) -> bool:
        return self.registry.remove(session_id, reason="terminated")

    def terminate_all_for(self, identity: str) -> int:
        return self.registry.terminate_all_for(identity, reason="terminated")

    # ---- admin ----
    def unlock(self, identity: str, *, actor: str = "admin") -> bool:
        return self.lockout.unlock(identity, actor=actor)

    def get_conflict_policy(self) -> ConflictPolicy:
        return self.conflict.get_policy()

    def set_conflict_policy(self, policy: Any) -> ConflictPolicy:
        return self.conflict.set_policy(policy)

    def stats(self) -> Dict[str, Any]:
        return {
            "sessions": self.registry.stats(),
            "conflicts": self.conflict.conflict_stats(),
            "lockouts": self.lockout.locked_identities(),
        }

    # ---- internals ----
    def _audit(self, event: str, out: AuthOutcome, *, client_id: Optional[str], extra: Dict[str, Any]) -> None:
        details: Dict[str, Any] = {"code": out.code, "shared": out.shared, **extra}
        if out.session is not None:
            details["session_id"] = out.session.session_id
        if out.kind == OutcomeKind.success and out.forced_logout:
            details["terminated_sessions"] = out.terminated_sessions
        if out.kind == OutcomeKind.limit_reached:
            details.update({"current": out.current, "max": out.max})
        if self.audit_logger is not None:
            self.audit_logger.log(event=event, identity=out.identity, outcome=out.kind.value, client_id=client_id, details=details)
        if self.logger:
            level = "info" if out.ok else "warning"
            getattr(self.logger, level)("%s %s -> %s", event, out.identity, out.kind.value)
