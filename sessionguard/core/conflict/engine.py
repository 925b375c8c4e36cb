from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sessionguard.core.config.models import ConflictConfig, ConflictPolicy
from sessionguard.core.errors import (
    ConflictChoiceRequiredError,
    NoPendingConflictError,
    SessionConflictError,
    UserCancelledError,
    ValidationError,
)
from sessionguard.core.events.models import CONFLICT_FORCED_LOGOUT, CONFLICT_POLICY_CHANGED, BaseEvent, EventSeverity, EventSource
from sessionguard.core.sessions.format import summarize
from sessionguard.core.sessions.models import ClientInfo, IdentitySnapshot, Namespace, Session, SessionSummary
from sessionguard.core.sessions.registry import SessionRegistry
from sessionguard.core.store.records import SETTINGS, RecordStore


POLICY_KEY = "conflict_policy"


class ResolveAction:
    cancel = "cancel"
    force = "force"
    prevent = "prevent"


RESOLVE_ACTIONS = (ResolveAction.cancel, ResolveAction.force, ResolveAction.prevent)


@dataclass
class Admission:
    session: Session
    terminated_sessions: int = 0
    forced_logout: bool = False


@dataclass
class PendingConflict:
    """A login held back under the ask policy, waiting for cancel or force."""

    identity: str
    existing: List[Session]
    snapshot: IdentitySnapshot
    duration_profile: Optional[str] = None
    client: ClientInfo = field(default_factory=ClientInfo)
    created_at: int = 0


class ConflictPolicyEngine:
    """
    Decides what happens when a regular identity with valid credentials
    already has live sessions. Shared accounts never come through here.

    The policy is process-wide and persisted in settings/conflict_policy.
    Under ask, the held-back login sits in a single pending slot that the
    next resolve() consumes.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: RecordStore,
        *,
        cfg: Optional[ConflictConfig] = None,
        logger=None,
        event_bus: Any = None,
    ):
        self.registry = registry
        self.store = store
        self.cfg = cfg or ConflictConfig()
        self.logger = logger
        self.event_bus = event_bus
        self._slot_lock = threading.Lock()
        self._pending: Optional[PendingConflict] = None

    # ---- policy ----
    def get_policy(self) -> ConflictPolicy:
        raw = self.store.get(SETTINGS, POLICY_KEY) or {}
        try:
            return ConflictPolicy(str(raw.get("value") or self.cfg.default_policy.value))
        except ValueError:
            if self.logger:
                self.logger.warning("stored conflict policy %r is unknown; using %s", raw.get("value"), self.cfg.default_policy.value)
            return self.cfg.default_policy

    def set_policy(self, policy: Any) -> ConflictPolicy:
        try:
            new = ConflictPolicy(policy.value if isinstance(policy, ConflictPolicy) else str(policy))
        except ValueError as e:
            raise ValidationError("Unknown conflict policy.", policy=str(policy)) from e
        old = self.get_policy()
        self.store.set(SETTINGS, POLICY_KEY, {"value": new.value})
        if self.logger:
            self.logger.info("conflict policy changed %s -> %s", old.value, new.value)
        if self.event_bus is not None:
            self.event_bus.publish(
                BaseEvent(event_type=CONFLICT_POLICY_CHANGED, source=EventSource.conflict, payload={"old": old.value, "new": new.value})
            )
        return new

    # ---- admission ----
    def admit(self, snapshot: IdentitySnapshot, duration_profile: Optional[str] = None, client: Optional[ClientInfo] = None) -> Admission:
        """
        Creates the session or raises SessionConflictError (prevent) /
        ConflictChoiceRequiredError (ask).
        """
        client = client or ClientInfo()
        policy = self.get_policy()
        with self.registry.exclusive(Namespace.regular):
            existing = self.registry.sessions_for(snapshot.name, shared=False)
            if not existing:
                return Admission(session=self.registry.create(snapshot, duration_profile, client))
            if policy == ConflictPolicy.force:
                return self._force(snapshot, existing, duration_profile, client)
            if policy == ConflictPolicy.ask:
                with self._slot_lock:
                    self._pending = PendingConflict(
                        identity=snapshot.name,
                        existing=existing,
                        snapshot=snapshot,
                        duration_profile=duration_profile,
                        client=client,
                        created_at=self.registry.now_ms(),
                    )
                raise ConflictChoiceRequiredError(identity=snapshot.name, existing=self.summaries(existing))
            raise SessionConflictError(identity=snapshot.name, existing=self.summaries(existing))

    def pending(self) -> Optional[PendingConflict]:
        with self._slot_lock:
            return self._pending

    def resolve(self, action: str) -> Admission:
        """
        Consumes the pending conflict. cancel raises UserCancelledError,
        force terminates the stored sessions and creates the new one, and
        prevent declines with SessionConflictError. An empty slot raises
        NoPendingConflictError. Any other action raises ValidationError and
        leaves the pending conflict in place.
        """
        action = str(action)
        if action not in RESOLVE_ACTIONS:
            raise ValidationError("Unknown conflict action.", action=action)
        with self._slot_lock:
            pc, self._pending = self._pending, None
        if pc is None:
            raise NoPendingConflictError(action=action)
        if action == ResolveAction.cancel:
            if self.logger:
                self.logger.info("pending conflict for %s cancelled", pc.identity)
            raise UserCancelledError(identity=pc.identity)
        if action == ResolveAction.force:
            with self.registry.exclusive(Namespace.regular):
                return self._force(pc.snapshot, pc.existing, pc.duration_profile, pc.client)
        raise SessionConflictError(identity=pc.identity, existing=self.summaries(pc.existing))

    def summaries(self, sessions: List[Session]) -> List[SessionSummary]:
        now = self.registry.now_ms()
        return [summarize(s, now) for s in sessions]

    # ---- admin ----
    def conflict_stats(self) -> Dict[str, Any]:
        counts: Dict[str, int] = {}
        active = [s for s in self.registry.list_active() if not s.shared]
        for s in active:
            counts[s.name] = counts.get(s.name, 0) + 1
        duplicates = [{"identity": k, "session_count": v} for k, v in sorted(counts.items()) if v > 1]
        return {
            "policy": self.get_policy().value,
            "total_identities": len(counts),
            "total_sessions": len(active),
            "duplicate_identities": duplicates,
            "has_duplicates": bool(duplicates),
            "pending_conflict": self.pending() is not None,
        }

    def force_logout_identity(self, identity: str, *, actor: str = "admin") -> int:
        with self.registry.exclusive(Namespace.regular):
            n = self.registry.terminate_all_for(identity, shared=False, reason="forced_logout")
        self._forced(identity, n, actor=actor)
        return n

    def force_logout_duplicates(self, *, actor: str = "admin") -> int:
        """Keeps the most recently active session of each regular identity."""
        total = 0
        with self.registry.exclusive(Namespace.regular):
            by_identity: Dict[str, List[Session]] = {}
            for s in self.registry.list_active():
                if not s.shared:
                    by_identity.setdefault(s.name, []).append(s)
            for identity, sessions in sorted(by_identity.items()):
                if len(sessions) < 2:
                    continue
                sessions.sort(key=lambda s: (s.last_activity, s.login_time), reverse=True)
                n = sum(1 for s in sessions[1:] if self.registry.remove(s.session_id, reason="forced_logout"))
                self._forced(identity, n, actor=actor)
                total += n
        return total

    # ---- internals ----
    def _force(self, snapshot: IdentitySnapshot, existing: List[Session], duration_profile: Optional[str], client: ClientInfo) -> Admission:
        terminated = sum(1 for s in existing if self.registry.remove(s.session_id, reason="forced_logout"))
        self._forced(snapshot.name, terminated, actor=snapshot.name)
        session = self.registry.create(snapshot, duration_profile, client)
        return Admission(session=session, terminated_sessions=terminated, forced_logout=True)

    def _forced(self, identity: str, count: int, *, actor: str) -> None:
        if not count:
            return
        if self.logger:
            self.logger.warning("forced logout of %d session(s) for %s (by %s)", count, identity, actor)
        if self.event_bus is not None:
            self.event_bus.publish(
                BaseEvent(
                    event_type=CONFLICT_FORCED_LOGOUT,
                    source=EventSource.conflict,
                    severity=EventSeverity.WARN,
                    payload={"identity": identity, "terminated_sessions": count, "actor": actor},
                )
            )
