from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from sessionguard.core.config.models import SessionsConfig
from sessionguard.core.events.models import sessions_changed
from sessionguard.core.sessions.models import ClientInfo, IdentitySnapshot, Namespace, Session
from sessionguard.core.store.records import CURRENT, SESSIONS, RecordStore


class SessionRegistry:
    """
    Authoritative table of issued sessions.

    Store layout:
    - sessions/<session_id> -> Session
    - current/<client_id>   -> {"session_id": ..., "updated_at": ms}

    The registry is the only writer of both tables. Expired or deactivated
    sessions are never returned; they are dropped lazily on lookup and in
    bulk by sweep_expired().

    Locking: one table lock serialises every read-modify-write, and one
    exclusive(namespace) lock per identity namespace lets admission code
    make count-then-create atomic. Namespace locks are always taken before
    the table lock.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        cfg: Optional[SessionsConfig] = None,
        logger=None,
        event_bus: Any = None,
        time_fn: Callable[[], float] = time.time,
    ):
        self.store = store
        self.cfg = cfg or SessionsConfig()
        self.logger = logger
        self.event_bus = event_bus
        self._time = time_fn
        self._table_lock = threading.RLock()
        self._ns_locks: Dict[Namespace, threading.RLock] = {ns: threading.RLock() for ns in Namespace}

    def now_ms(self) -> int:
        return int(self._time() * 1000)

    @contextmanager
    def exclusive(self, namespace: Namespace) -> Iterator[None]:
        lock = self._ns_locks[Namespace(namespace)]
        with lock:
            yield

    # ---- core operations ----
    def create(self, snapshot: IdentitySnapshot, duration_profile: Optional[str] = None, client: Optional[ClientInfo] = None) -> Session:
        client = client or ClientInfo()
        profile, duration_ms = self.resolve_duration(snapshot, duration_profile)
        now = self.now_ms()
        session = Session(
            identity=snapshot,
            login_time=now,
            last_activity=now,
            expires_at=now + duration_ms,
            duration_profile=profile,
            duration_ms=duration_ms,
            client=client,
        )
        with self._table_lock:
            self.store.set(SESSIONS, session.session_id, session.model_dump(mode="json"))
            self._write_current(client.client_id, session.session_id, now)
        if self.logger:
            self.logger.info("session %s created for %s (%s, %d ms)", session.session_id, snapshot.name, profile, duration_ms)
        self._notify("created", session_id=session.session_id, identity=snapshot.name)
        return session

    def get(self, session_id: str, *, touch: Optional[bool] = None) -> Optional[Session]:
        """
        Valid session or None. An expired hit is removed; a valid hit has its
        last_activity refreshed unless touch is False.
        """
        touch = self.cfg.touch_on_get if touch is None else bool(touch)
        now = self.now_ms()
        with self._table_lock:
            session = self._load(session_id)
            if session is None:
                return None
            if not session.is_valid(now):
                expired = True
            else:
                expired = False
                if touch:
                    session.last_activity = now
                    self.store.set(SESSIONS, session.session_id, session.model_dump(mode="json"))
        if expired:
            self.remove(session_id, reason="expired")
            return None
        if touch:
            self._notify("touched", session_id=session.session_id, identity=session.name)
        return session

    def list_active(self) -> List[Session]:
        now = self.now_ms()
        out = [s for _sid, s in self._all() if s is not None and s.is_valid(now)]
        return sorted(out, key=lambda s: (s.login_time, s.session_id))

    def remove(self, session_id: str, *, reason: str = "removed") -> bool:
        """Idempotent; removing an absent id returns False."""
        with self._table_lock:
            raw = self.store.get(SESSIONS, session_id)
            if not self.store.delete(SESSIONS, session_id):
                return False
            for client_id, ptr in self.store.items(CURRENT):
                if ptr.get("session_id") == session_id:
                    self.store.delete(CURRENT, client_id)
        ident = raw.get("identity") if isinstance(raw, dict) else None
        identity = ident.get("name") if isinstance(ident, dict) else None
        if self.logger:
            self.logger.info("session %s removed (%s)", session_id, reason)
        self._notify(reason, session_id=session_id, identity=identity)
        return True

    def sweep_expired(self) -> int:
        now = self.now_ms()
        stale = [sid for sid, s in self._all() if s is None or not s.is_valid(now)]
        removed = sum(1 for sid in stale if self.remove(sid, reason="expired"))
        if removed and self.logger:
            self.logger.info("expiry sweep removed %d sessions", removed)
        return removed

    def sessions_for(self, identity: str, shared: Optional[bool] = None) -> List[Session]:
        """
        Valid sessions owned by identity. shared=None matches both
        namespaces; True/False restricts to one.
        """
        out = [s for s in self.list_active() if s.name == identity]
        if shared is not None:
            out = [s for s in out if s.shared == bool(shared)]
        return out

    def sessions_for_client(self, client_id: str) -> List[Session]:
        """Valid sessions issued to client_id, i.e. created with that ClientInfo."""
        return [s for s in self.list_active() if s.client.client_id == str(client_id)]

    # ---- per-client current pointer ----
    def current_for(self, client_id: str, *, touch: Optional[bool] = None) -> Optional[Session]:
        ptr = self.store.get(CURRENT, client_id)
        if not ptr:
            return None
        session = self.get(str(ptr.get("session_id") or ""), touch=touch)
        if session is None:
            with self._table_lock:
                cur = self.store.get(CURRENT, client_id)
                if cur and cur.get("session_id") == ptr.get("session_id"):
                    self.store.delete(CURRENT, client_id)
        return session

    def set_current(self, client_id: str, session_id: str) -> bool:
        with self._table_lock:
            if self._load(session_id) is None:
                return False
            self._write_current(client_id, session_id, self.now_ms())
        return True

    def clear_current(self, client_id: str) -> bool:
        with self._table_lock:
            return self.store.delete(CURRENT, client_id)

    # ---- bulk / admin ----
    def remove_all(self, *, reason: str = "removed_all") -> int:
        return sum(1 for sid, _s in self._all() if self.remove(sid, reason=reason))

    def terminate_all_for(self, identity: str, shared: Optional[bool] = None, *, reason: str = "terminated") -> int:
        return sum(1 for s in self.sessions_for(identity, shared=shared) if self.remove(s.session_id, reason=reason))

    def stats(self) -> Dict[str, Any]:
        breakdown: Dict[str, Dict[str, Any]] = {}
        active = self.list_active()
        for s in active:
            row = breakdown.setdefault(s.name, {"count": 0, "sessions": [], "last_activity": None, "shared": s.shared})
            row["count"] += 1
            row["sessions"].append(s.session_id)
            if row["last_activity"] is None or s.last_activity > row["last_activity"]:
                row["last_activity"] = s.last_activity
        return {"total_sessions": len(active), "unique_identities": len(breakdown), "identities": breakdown}

    # ---- duration resolution ----
    def resolve_duration(self, snapshot: IdentitySnapshot, requested: Optional[str]) -> Tuple[str, int]:
        """
        Requested profile if the identity declares it and it does not exceed
        the identity's max profile; else the declared default profile; else
        the configured default duration.
        """
        table = snapshot.durations or {}
        cap = table.get(snapshot.max_profile) if snapshot.max_profile else None
        if requested and requested in table and (cap is None or table[requested] <= cap):
            return requested, int(table[requested])
        if snapshot.default_profile and snapshot.default_profile in table:
            return snapshot.default_profile, int(table[snapshot.default_profile])
        return "default", int(self.cfg.default_duration_ms)

    # ---- internals ----
    def _load(self, session_id: str) -> Optional[Session]:
        raw = self.store.get(SESSIONS, session_id)
        if raw is None:
            return None
        return self._parse(session_id, raw)

    def _all(self) -> List[Tuple[str, Optional[Session]]]:
        return [(sid, self._parse(sid, raw)) for sid, raw in self.store.items(SESSIONS)]

    def _parse(self, session_id: str, raw: Dict[str, Any]) -> Optional[Session]:
        try:
            return Session.model_validate(raw)
        except PydanticValidationError:
            if self.logger:
                self.logger.warning("session record %s is malformed; treating as expired", session_id)
            return None

    def _write_current(self, client_id: str, session_id: str, now: int) -> None:
        self.store.set(CURRENT, client_id, {"session_id": session_id, "updated_at": now})

    def _notify(self, reason: str, **payload: Any) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(sessions_changed(reason, **payload))
