from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from sessionguard.core.config.models import LockoutConfig
from sessionguard.core.events.models import AUTH_LOCKED_OUT, BaseEvent, EventSeverity, EventSource
from sessionguard.core.security_events import SecurityAuditLogger
from sessionguard.core.store.records import LOCKOUTS, RecordStore


NOT_LOCKED = 0


class LockoutRecord(BaseModel):
    attempts: List[int] = Field(default_factory=list)


class LockoutGuard:
    """
    Sliding-window failed-attempt counter per identity.

    Store layout: lockouts/<identity> -> {"attempts": [ms, ...]}
    Only attempts inside the trailing window are kept. Stale attempts are
    dropped from the store whenever a record is read or written, and
    prune() empties the table of records with nothing left in the window.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        cfg: Optional[LockoutConfig] = None,
        logger=None,
        audit_logger: Optional[SecurityAuditLogger] = None,
        event_bus: Any = None,
        time_fn: Callable[[], float] = time.time,
    ):
        self.store = store
        self.cfg = cfg or LockoutConfig()
        self.logger = logger
        self.audit_logger = audit_logger
        self.event_bus = event_bus
        self._time = time_fn
        self._lock = threading.RLock()

    def record_failure(self, identity: str) -> int:
        """Returns the number of attempts now inside the window."""
        now = self._now_ms()
        with self._lock:
            attempts = self._retained(identity, now)
            attempts.append(now)
            self.store.set(LOCKOUTS, identity, LockoutRecord(attempts=attempts).model_dump())
        count = len(attempts)
        if count == int(self.cfg.max_attempts):
            self._on_locked(identity, ends_at=now + self.cfg.window_ms, count=count)
        return count

    def is_locked_out(self, identity: str) -> bool:
        return len(self._retained(identity, self._now_ms())) >= int(self.cfg.max_attempts)

    def clear(self, identity: str) -> None:
        with self._lock:
            self.store.delete(LOCKOUTS, identity)

    def lockout_ends_at(self, identity: str) -> int:
        attempts = self._retained(identity, self._now_ms())
        if not attempts:
            return NOT_LOCKED
        return max(attempts) + self.cfg.window_ms

    def remaining_ms(self, identity: str) -> int:
        if not self.is_locked_out(identity):
            return 0
        return max(0, self.lockout_ends_at(identity) - self._now_ms())

    def locked_identities(self) -> List[Dict[str, Any]]:
        now = self._now_ms()
        out: List[Dict[str, Any]] = []
        for name in self.store.keys(LOCKOUTS):
            attempts = self._retained(name, now)
            if len(attempts) >= int(self.cfg.max_attempts):
                ends_at = max(attempts) + self.cfg.window_ms
                out.append({"identity": name, "attempts": len(attempts), "ends_at": ends_at, "remaining_ms": max(0, ends_at - now)})
        return sorted(out, key=lambda r: r["identity"])

    def prune(self) -> int:
        """Deletes records with no attempts left in the window; returns how many."""
        now = self._now_ms()
        removed = 0
        with self._lock:
            for name in self.store.keys(LOCKOUTS):
                if not self._retained(name, now):
                    # malformed records are not deleted by _retained
                    self.store.delete(LOCKOUTS, name)
                    removed += 1
        if removed and self.logger:
            self.logger.info("lockout prune removed %d stale records", removed)
        return removed

    def unlock(self, identity: str, *, actor: str = "admin") -> bool:
        was_locked = self.is_locked_out(identity)
        self.clear(identity)
        if self.audit_logger is not None:
            self.audit_logger.log(event="lockout.unlocked", identity=identity, outcome="unlocked" if was_locked else "noop", details={"actor": actor})
        if self.logger:
            self.logger.info("lockout cleared for %s by %s", identity, actor)
        return was_locked

    # ---- internals ----
    def _now_ms(self) -> int:
        return int(self._time() * 1000)

    def _retained(self, identity: str, now: int) -> List[int]:
        with self._lock:
            raw = self.store.get(LOCKOUTS, identity)
            if raw is None:
                return []
            try:
                rec = LockoutRecord.model_validate(raw)
            except Exception:  # noqa: BLE001
                # unreadable counter reads as no attempts
                if self.logger:
                    self.logger.warning("ignoring malformed lockout record for %s", identity)
                return []
            cutoff = now - self.cfg.window_ms
            kept = sorted(int(t) for t in rec.attempts if int(t) > cutoff)
            if len(kept) != len(rec.attempts):
                # aged-out attempts leave the store as soon as they are seen
                if kept:
                    self.store.set(LOCKOUTS, identity, LockoutRecord(attempts=kept).model_dump())
                else:
                    self.store.delete(LOCKOUTS, identity)
            return kept

    def _on_locked(self, identity: str, *, ends_at: int, count: int) -> None:
        if self.logger:
            self.logger.warning("identity %s locked out after %d failed attempts", identity, count)
        if self.event_bus is not None:
            self.event_bus.publish(
                BaseEvent(
                    event_type=AUTH_LOCKED_OUT,
                    source=EventSource.lockout,
                    severity=EventSeverity.WARN,
                    payload={"identity": identity, "attempts": count, "ends_at": ends_at},
                )
            )
