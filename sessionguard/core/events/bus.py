from __future__ import annotations

import collections
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sessionguard.core.events.models import BaseEvent, EventSeverity, EventSource


EventHandler = Callable[[BaseEvent], None]


class OverflowPolicy(str, Enum):
    DROP_OLDEST = "DROP_OLDEST"
    DROP_NEWEST = "DROP_NEWEST"


class EventBusConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_queue_size: int = Field(default=1000, ge=10, le=100_000)
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST
    shutdown_grace_seconds: float = Field(default=2.0, ge=0.1, le=60.0)


@dataclass
class _Subscription:
    pattern: str
    handler: EventHandler
    inbox: "queue.Queue[Optional[BaseEvent]]" = field(default_factory=queue.Queue)
    thread: Optional[threading.Thread] = None
    pending: int = 0


@dataclass
class _Counters:
    published: int = 0
    dropped: int = 0
    delivered: int = 0
    handler_errors: int = 0
    per_type: Dict[str, int] = field(default_factory=dict)


class EventBus:
    """
    In-process publish/subscribe channel for session change notifications.

    - publish never blocks the caller (bounded queue, overflow policy)
    - each subscriber has its own worker, so it sees events in publish order
    - a failing handler is counted and reported, never propagated
    """

    def __init__(self, *, cfg: Optional[EventBusConfig] = None, logger=None):
        self.cfg = cfg or EventBusConfig()
        self.logger = logger

        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)
        self._queue: Deque[BaseEvent] = collections.deque()
        self._subs: List[_Subscription] = []
        self._counters = _Counters()
        self._running = False
        self._dispatcher: Optional[threading.Thread] = None
        if self.cfg.enabled:
            self.start()

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._dispatcher = threading.Thread(target=self._dispatch_loop, name="sessionguard-events", daemon=True)
        self._dispatcher.start()

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        """
        pattern is an exact event type ("sessions.changed"), a prefix
        ("sessions.*") or "*" for everything.
        """
        if not callable(handler):
            raise ValueError("handler must be callable")
        sub = _Subscription(pattern=str(pattern), handler=handler)
        sub.thread = threading.Thread(target=self._worker_loop, args=(sub,), name=f"sessionguard-sub-{len(self._subs) + 1}", daemon=True)
        sub.thread.start()
        with self._lock:
            self._subs.append(sub)

    def unsubscribe(self, handler: EventHandler) -> int:
        with self._lock:
            gone = [s for s in self._subs if s.handler is handler]
            self._subs = [s for s in self._subs if s.handler is not handler]
        for s in gone:
            s.inbox.put(None)
        return len(gone)

    def publish(self, ev: BaseEvent) -> bool:
        with self._lock:
            if not self._running:
                return False
            if len(self._queue) >= int(self.cfg.max_queue_size):
                self._counters.dropped += 1
                if self.cfg.overflow_policy == OverflowPolicy.DROP_NEWEST:
                    return False
                self._queue.popleft()
            self._queue.append(ev)
            self._counters.published += 1
            self._counters.per_type[ev.event_type] = self._counters.per_type.get(ev.event_type, 0) + 1
            self._cv.notify_all()
            return True

    def flush(self, timeout: float = 2.0) -> bool:
        """
        Wait until every published event has been handled. Returns False on timeout.
        """
        deadline = time.time() + float(timeout)
        with self._lock:
            while self._queue or any(s.pending for s in self._subs):
                remaining = deadline - time.time()
                if remaining <= 0:
                    return False
                self._cv.wait(timeout=min(0.05, remaining))
        return True

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            c = self._counters
            return {
                "running": self._running,
                "published_total": c.published,
                "dropped_total": c.dropped,
                "delivered_total": c.delivered,
                "handler_errors_total": c.handler_errors,
                "queue_depth": len(self._queue),
                "subscribers": len(self._subs),
                "per_type_published": dict(c.per_type),
            }

    def shutdown(self, grace_seconds: Optional[float] = None) -> None:
        grace = float(self.cfg.shutdown_grace_seconds if grace_seconds is None else grace_seconds)
        self.flush(timeout=grace)
        with self._lock:
            self._running = False
            subs, self._subs = self._subs, []
            self._cv.notify_all()
        if self._dispatcher is not None and self._dispatcher.is_alive():
            self._dispatcher.join(timeout=grace)
        for s in subs:
            s.inbox.put(None)
            if s.thread is not None:
                s.thread.join(timeout=0.5)

    # ---- internals ----
    def _dispatch_loop(self) -> None:
        while True:
            with self._lock:
                while self._running and not self._queue:
                    self._cv.wait(timeout=0.2)
                if not self._running and not self._queue:
                    return
                ev = self._queue.popleft()
                targets = [s for s in self._subs if _matches(s.pattern, ev.event_type)]
                for s in targets:
                    s.pending += 1
                self._counters.delivered += len(targets)
            for s in targets:
                s.inbox.put(ev)

    def _worker_loop(self, sub: _Subscription) -> None:
        while True:
            ev = sub.inbox.get()
            if ev is None:
                return
            try:
                sub.handler(ev)
            except Exception as e:  # noqa: BLE001
                self._on_handler_error(sub, ev, e)
            finally:
                with self._lock:
                    sub.pending = max(0, sub.pending - 1)
                    self._cv.notify_all()

    def _on_handler_error(self, sub: _Subscription, ev: BaseEvent, exc: Exception) -> None:
        with self._lock:
            self._counters.handler_errors += 1
        if self.logger:
            self.logger.warning("event handler %s failed on %s: %s", getattr(sub.handler, "__name__", "handler"), ev.event_type, exc)
        if ev.event_type == "events.handler_error":
            return
        self.publish(
            BaseEvent(
                event_type="events.handler_error",
                source=EventSource.events,
                severity=EventSeverity.ERROR,
                payload={"handler": getattr(sub.handler, "__name__", "handler"), "event_type": ev.event_type, "error": str(exc)[:500]},
            )
        )


def _matches(pattern: str, event_type: str) -> bool:
    if pattern == "*":
        return True
    if pattern.endswith(".*"):
        return event_type.startswith(pattern[:-1])
    return pattern == event_type
