from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sessionguard.core.credentials.models import IdentityRecord, SharedAccount
from sessionguard.core.credentials.store import CredentialStore


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self._t = float(start)

    def time(self) -> float:
        return self._t

    def advance(self, seconds: float) -> None:
        self._t += float(seconds)

    def now_ms(self) -> int:
        return int(self._t * 1000)


@dataclass
class RecordingBus:
    """Synchronous stand-in for EventBus.publish; keeps every event."""

    events: List[Any] = field(default_factory=list)

    def publish(self, ev) -> bool:  # noqa: ANN001
        self.events.append(ev)
        return True

    def types(self) -> List[str]:
        return [e.event_type for e in self.events]

    def reasons(self) -> List[str]:
        return [e.payload.get("reason") for e in self.events if e.event_type == "sessions.changed"]

    def clear(self) -> None:
        self.events.clear()


class FlakyCredentialStore(CredentialStore):
    """
    Credential backend that fails on demand: mode "error" raises, mode
    "hang" blocks until release() (or 5s).
    """

    def __init__(self, identities: Optional[Dict[str, IdentityRecord]] = None, *, mode: str = "ok"):
        self.identities = dict(identities or {})
        self.mode = mode
        self.calls = 0
        self._release = threading.Event()

    def release(self) -> None:
        self._release.set()

    def _maybe_fail(self) -> None:
        self.calls += 1
        if self.mode == "error":
            raise ConnectionError("backend down")
        if self.mode == "hang":
            self._release.wait(timeout=5.0)

    def lookup(self, name: str) -> Optional[IdentityRecord]:
        self._maybe_fail()
        return self.identities.get(name)

    def record_login_success(self, name: str, timestamp: int) -> None:
        self._maybe_fail()

    def lookup_shared(self, name: str) -> Optional[SharedAccount]:
        self._maybe_fail()
        return None

    def record_shared_access(self, name: str, timestamp: int) -> None:
        self._maybe_fail()


HOUR_MS = 3_600_000


def alice_record(**overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "name": "alice",
        "secret": "wonderland",
        "role": "user",
        "capabilities": ["chat_access"],
        "api_access": True,
        "durations": {"15min": HOUR_MS // 4, "1hour": HOUR_MS, "8hours": 8 * HOUR_MS},
        "default_profile": "8hours",
        "max_profile": "8hours",
    }
    data.update(overrides)
    return data
