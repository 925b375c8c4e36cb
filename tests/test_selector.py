from __future__ import annotations

import pytest

from sessionguard.core.events.bus import EventBus
from sessionguard.core.selector import SessionSelector
from sessionguard.core.sessions.format import browser_display_name, time_remaining, urgency
from sessionguard.core.sessions.models import ClientInfo, IdentitySnapshot
from sessionguard.core.sessions.registry import SessionRegistry
from sessionguard.core.store.records import MemoryRecordStore

from .helpers.fakes import HOUR_MS


def _snap(name: str = "alice") -> IdentitySnapshot:
    return IdentitySnapshot(
        name=name,
        role="user",
        durations={"15min": HOUR_MS // 4, "1hour": HOUR_MS, "3hours": 3 * HOUR_MS},
        default_profile="3hours",
        max_profile="3hours",
    )


@pytest.fixture
def registry(records, bus, clock):
    return SessionRegistry(records, event_bus=bus, time_fn=clock.time)


def test_switch_to_valid_session(registry, bus):
    a = registry.create(_snap("alice"), client=ClientInfo(client_id="tab"))
    b = registry.create(_snap("bob"), client=ClientInfo(client_id="tab"))
    assert registry.set_current("tab", a.session_id)
    seen = []
    sel = SessionSelector(registry, "tab", event_bus=bus, on_switch=seen.append)
    assert sel.current().session_id == a.session_id

    got = sel.switch_to(b.session_id)
    assert got.session_id == b.session_id
    assert sel.current().session_id == b.session_id
    assert [s.session_id for s in seen] == [b.session_id]
    switched = [e for e in bus.events if e.event_type == "session.switched"]
    assert switched[-1].payload == {"client_id": "tab", "session_id": b.session_id, "identity": "bob"}


def test_switch_to_unknown_or_expired_leaves_pointer(registry, clock):
    a = registry.create(_snap("alice"), "3hours", client=ClientInfo(client_id="tab"))
    short = registry.create(_snap("bob"), "15min", client=ClientInfo(client_id="tab"))
    assert registry.set_current("tab", a.session_id)
    seen = []
    sel = SessionSelector(registry, "tab", on_switch=seen.append)

    assert sel.switch_to("sess_missing") is None
    clock.advance(15 * 60)
    assert sel.switch_to(short.session_id) is None
    assert sel.current().session_id == a.session_id
    assert seen == []


def test_list_for_switching(registry, clock):
    a = registry.create(_snap("alice"), "1hour", client=ClientInfo(client_id="tab", user_agent="Firefox/121.0", platform="Linux x86_64"))
    clock.advance(1)
    registry.create(_snap("bob"), "3hours", client=ClientInfo(client_id="tab"))
    registry.create(_snap("carol"), client=ClientInfo(client_id="other"))
    assert registry.set_current("tab", a.session_id)
    sel = SessionSelector(registry, "tab")

    views = sel.list_for_switching()
    assert [v.identity for v in views] == ["alice", "bob"]
    alice, bob = views
    assert alice.is_current is True and bob.is_current is False
    assert alice.time_remaining == "0h 59m"
    assert alice.urgency == "warning"
    assert alice.browser == "Firefox on Linux"
    assert bob.urgency is None
    assert bob.browser == "Unknown Browser"
    assert alice.session_id == a.session_id

    clock.advance(40 * 60)
    assert sel.list_for_switching()[0].urgency == "critical"


def test_listing_does_not_touch_sessions(registry, clock, bus):
    a = registry.create(_snap(), client=ClientInfo(client_id="tab"))
    clock.advance(60)
    bus.clear()
    SessionSelector(registry, "tab").list_for_switching()
    assert registry.get(a.session_id, touch=False).last_activity == a.last_activity
    assert bus.reasons() == []


def test_current_drops_expired_pointer(registry, records, clock):
    registry.create(_snap(), "15min", client=ClientInfo(client_id="tab"))
    sel = SessionSelector(registry, "tab")
    clock.advance(15 * 60)
    assert sel.current() is None
    assert records.get("current", "tab") is None


def test_logout_current_and_all(registry):
    registry.create(_snap("alice"), client=ClientInfo(client_id="tab"))
    registry.create(_snap("bob"), client=ClientInfo(client_id="tab"))
    c = registry.create(_snap("carol"), client=ClientInfo(client_id="other"))
    sel = SessionSelector(registry, "tab")

    assert sel.logout_current() is True
    assert sel.logout_current() is False
    assert [v.identity for v in sel.list_for_switching()] == ["alice"]
    assert sel.logout_all() == 1
    assert [s.session_id for s in registry.list_active()] == [c.session_id]


def test_foreign_client_sees_nothing_and_cannot_switch(registry, bus):
    a = registry.create(_snap("alice"), client=ClientInfo(client_id="alice-tab"))
    bus.clear()
    intruder = SessionSelector(registry, "intruder-tab", event_bus=bus)

    assert intruder.list_for_switching() == []
    assert intruder.owns(a.session_id) is False
    assert intruder.switch_to(a.session_id) is None
    assert intruder.current() is None
    assert registry.current_for("intruder-tab") is None
    assert intruder.logout_all() == 0
    assert registry.get(a.session_id, touch=False) is not None
    assert bus.types() == []


def test_watch_delivers_fresh_listing():
    bus = EventBus()
    try:
        registry = SessionRegistry(MemoryRecordStore(), event_bus=bus)
        sel = SessionSelector(registry, "tab", event_bus=bus)
        snapshots = []
        handler = sel.watch(snapshots.append)

        s = registry.create(_snap(), client=ClientInfo(client_id="tab"))
        assert bus.flush(timeout=2.0)
        assert snapshots and [v.session_id for v in snapshots[-1]] == [s.session_id]

        registry.remove(s.session_id)
        assert bus.flush(timeout=2.0)
        assert snapshots[-1] == []

        assert sel.unwatch(handler) == 1
        n = len(snapshots)
        registry.create(_snap())
        assert bus.flush(timeout=2.0)
        assert len(snapshots) == n
    finally:
        bus.shutdown()


def test_watch_needs_a_bus(registry):
    with pytest.raises(RuntimeError):
        SessionSelector(registry, "tab").watch(lambda views: None)


@pytest.mark.parametrize(
    "remaining,expected",
    [
        (0, "Expired"),
        (-5, "Expired"),
        (59 * 1000, "0h 0m"),
        (HOUR_MS + 5 * 60 * 1000, "1h 5m"),
        (26 * HOUR_MS, "26h 0m"),
    ],
)
def test_time_remaining(remaining, expected):
    assert time_remaining(1_000_000 + remaining, 1_000_000) == expected


def test_urgency_thresholds():
    assert urgency(29 * 60 * 1000) == "critical"
    assert urgency(30 * 60 * 1000) == "warning"
    assert urgency(2 * HOUR_MS - 1) == "warning"
    assert urgency(2 * HOUR_MS) is None


@pytest.mark.parametrize(
    "ua,platform,expected",
    [
        ("Mozilla/5.0 Chrome/120.0 Safari/537.36 Edg/120.0", "Win32", "Edge on Windows"),
        ("Mozilla/5.0 (Macintosh) Version/17.1 Safari/605.1.15", "MacIntel", "Safari on macOS"),
        ("Mozilla/5.0 Chrome/120.0 Safari/537.36", "Linux x86_64", "Chrome on Linux"),
        ("curl/8.0", "", "Unknown"),
    ],
)
def test_browser_display_name(ua, platform, expected):
    assert browser_display_name(ClientInfo(user_agent=ua, platform=platform)) == expected
