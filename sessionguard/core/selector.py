from __future__ import annotations

from typing import Any, Callable, List, Optional

from sessionguard.core.events.models import SESSION_SWITCHED, BaseEvent, EventSource
from sessionguard.core.sessions.format import browser_display_name, time_remaining, urgency
from sessionguard.core.sessions.models import Session, SessionView
from sessionguard.core.sessions.registry import SessionRegistry


class SessionSelector:
    """
    One client's view of the session table: the sessions issued to it,
    which of them it treats as current, and switching between them without
    re-authenticating. Sessions issued to other clients are invisible.

    on_switch is called with the new current session; reloading whatever
    "current user" state the surrounding application holds is its job.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        client_id: str = "default",
        *,
        event_bus: Any = None,
        on_switch: Optional[Callable[[Session], None]] = None,
        logger=None,
    ):
        self.registry = registry
        self.client_id = str(client_id)
        self.event_bus = event_bus
        self.on_switch = on_switch
        self.logger = logger
        self._watchers: List[Callable[..., None]] = []

    def switch_to(self, session_id: str) -> Optional[Session]:
        """
        None for unknown or expired ids and for sessions issued to another
        client; the current pointer is left alone.
        """
        if not self.owns(session_id):
            return None
        session = self.registry.get(session_id)
        if session is None or not self.registry.set_current(self.client_id, session.session_id):
            return None
        if self.logger:
            self.logger.info("client %s switched to session %s (%s)", self.client_id, session.session_id, session.name)
        if self.event_bus is not None:
            self.event_bus.publish(
                BaseEvent(
                    event_type=SESSION_SWITCHED,
                    source=EventSource.selector,
                    payload={"client_id": self.client_id, "session_id": session.session_id, "identity": session.name},
                )
            )
        if self.on_switch is not None:
            self.on_switch(session)
        return session

    def current(self) -> Optional[Session]:
        return self.registry.current_for(self.client_id)

    def owns(self, session_id: str) -> bool:
        session = self.registry.get(session_id, touch=False)
        return session is not None and session.client.client_id == self.client_id

    def list_for_switching(self) -> List[SessionView]:
        now = self.registry.now_ms()
        cur = self.registry.current_for(self.client_id, touch=False)
        cur_id = cur.session_id if cur is not None else None
        out: List[SessionView] = []
        for s in self.registry.sessions_for_client(self.client_id):
            remaining = max(0, s.expires_at - now)
            out.append(
                SessionView(
                    session_id=s.session_id,
                    identity=s.name,
                    role=s.identity.role,
                    shared=s.shared,
                    is_current=s.session_id == cur_id,
                    login_time=s.login_time,
                    last_activity=s.last_activity,
                    expires_at=s.expires_at,
                    remaining_ms=remaining,
                    time_remaining=time_remaining(s.expires_at, now),
                    urgency=urgency(remaining),
                    browser=browser_display_name(s.client),
                )
            )
        return out

    def logout_current(self) -> bool:
        cur = self.registry.current_for(self.client_id, touch=False)
        if cur is None:
            return False
        return self.registry.remove(cur.session_id, reason="logout")

    def logout_all(self) -> int:
        """Removes every session issued to this client."""
        return sum(1 for s in self.registry.sessions_for_client(self.client_id) if self.registry.remove(s.session_id, reason="logout_all"))

    # ---- change notifications ----
    def watch(self, callback: Callable[[List[SessionView]], None]) -> Callable[..., None]:
        """
        callback receives a fresh list_for_switching() after every
        sessions.changed notification. Returns the bus handler, for unwatch().
        """
        if self.event_bus is None:
            raise RuntimeError("watch() needs an event bus")

        def _on_sessions_changed(_ev: BaseEvent) -> None:
            callback(self.list_for_switching())

        self.event_bus.subscribe("sessions.*", _on_sessions_changed)
        self._watchers.append(_on_sessions_changed)
        return _on_sessions_changed

    def unwatch(self, handler: Optional[Callable[..., None]] = None) -> int:
        if self.event_bus is None:
            return 0
        targets = [handler] if handler is not None else list(self._watchers)
        n = 0
        for h in targets:
            n += self.event_bus.unsubscribe(h)
            if h in self._watchers:
                self._watchers.remove(h)
        return n
