from __future__ import annotations

import json

from sessionguard.core.config.models import LockoutConfig
from sessionguard.core.lockout.guard import NOT_LOCKED, LockoutGuard
from sessionguard.core.security_events import SecurityAuditLogger
from sessionguard.core.store.records import LOCKOUTS


def _guard(records, clock, bus=None, audit=None):
    return LockoutGuard(records, cfg=LockoutConfig(), event_bus=bus, audit_logger=audit, time_fn=clock.time)


def test_threshold_inside_window_locks_and_window_expiry_unlocks(records, clock):
    g = _guard(records, clock)
    for _ in range(4):
        g.record_failure("bob")
        clock.advance(30)
    assert g.is_locked_out("bob") is False
    g.record_failure("bob")
    assert g.is_locked_out("bob") is True

    # window is measured from the latest failure
    clock.advance(15 * 60 + 1)
    assert g.is_locked_out("bob") is False
    assert g.lockout_ends_at("bob") == NOT_LOCKED


def test_failures_spread_beyond_window_never_lock(records, clock):
    g = _guard(records, clock)
    for _ in range(10):
        g.record_failure("bob")
        clock.advance(4 * 60)
    assert g.is_locked_out("bob") is False


def test_lockout_ends_at_is_latest_attempt_plus_window(records, clock):
    g = _guard(records, clock)
    assert g.lockout_ends_at("bob") == NOT_LOCKED
    g.record_failure("bob")
    clock.advance(60)
    g.record_failure("bob")
    assert g.lockout_ends_at("bob") == clock.now_ms() + 15 * 60 * 1000


def test_remaining_ms_only_while_locked(records, clock):
    g = _guard(records, clock)
    g.record_failure("bob")
    assert g.remaining_ms("bob") == 0
    for _ in range(4):
        g.record_failure("bob")
    assert g.remaining_ms("bob") == 15 * 60 * 1000
    clock.advance(60)
    assert g.remaining_ms("bob") == 14 * 60 * 1000


def test_stored_attempts_are_pruned_on_write(records, clock):
    g = _guard(records, clock)
    g.record_failure("bob")
    clock.advance(16 * 60)
    g.record_failure("bob")
    assert records.get(LOCKOUTS, "bob") == {"attempts": [clock.now_ms()]}


def test_malformed_record_reads_as_no_attempts(records, clock):
    g = _guard(records, clock)
    records.set(LOCKOUTS, "bob", {"attempts": "not-a-list"})
    assert g.is_locked_out("bob") is False
    assert g.lockout_ends_at("bob") == NOT_LOCKED
    # and a new failure overwrites the bad record
    assert g.record_failure("bob") == 1


def test_clear_and_unlock(records, clock, tmp_path):
    audit_path = str(tmp_path / "security.jsonl")
    g = _guard(records, clock, audit=SecurityAuditLogger(path=audit_path))
    for _ in range(5):
        g.record_failure("bob")
    assert [r["identity"] for r in g.locked_identities()] == ["bob"]

    assert g.unlock("bob", actor="ops") is True
    assert g.is_locked_out("bob") is False
    assert g.locked_identities() == []
    assert g.unlock("bob") is False

    lines = [json.loads(x) for x in open(audit_path, "r", encoding="utf-8").read().splitlines()]
    assert [(x["event"], x["outcome"]) for x in lines] == [("lockout.unlocked", "unlocked"), ("lockout.unlocked", "noop")]
    assert lines[0]["details"]["actor"] == "ops"

    g.record_failure("carol")
    g.clear("carol")
    assert records.get(LOCKOUTS, "carol") is None


def test_lockout_publishes_once_at_threshold(records, clock, bus):
    g = _guard(records, clock, bus=bus)
    for _ in range(7):
        g.record_failure("bob")
    assert bus.types() == ["auth.locked_out"]
    assert bus.events[0].payload["identity"] == "bob"


def test_aged_out_attempts_leave_the_store_on_read(records, clock):
    g = _guard(records, clock)
    for _ in range(3):
        g.record_failure("ghost")
    clock.advance(10 * 60)
    g.record_failure("ghost")
    clock.advance(6 * 60)
    assert g.is_locked_out("ghost") is False
    assert records.get(LOCKOUTS, "ghost") == {"attempts": [clock.now_ms() - 6 * 60 * 1000]}

    clock.advance(10 * 60)
    assert g.lockout_ends_at("ghost") == NOT_LOCKED
    assert records.get(LOCKOUTS, "ghost") is None


def test_prune_empties_stale_and_malformed_records(records, clock):
    g = _guard(records, clock)
    for name in ("a", "b", "c"):
        g.record_failure(name)
    records.set(LOCKOUTS, "junk", {"attempts": "not-a-list"})
    clock.advance(10 * 60)
    g.record_failure("c")
    clock.advance(6 * 60)

    assert g.prune() == 3
    assert records.keys(LOCKOUTS) == ["c"]
    assert g.prune() == 0


def test_sweeper_prunes_lockouts(records, clock):
    from sessionguard.core.sessions.registry import SessionRegistry
    from sessionguard.core.sessions.sweeper import ExpirySweeper

    g = _guard(records, clock)
    g.record_failure("ghost")
    clock.advance(16 * 60)
    sweeper = ExpirySweeper(SessionRegistry(records, time_fn=clock.time), lockout=g)
    assert sweeper.run_once() == 0
    assert records.get(LOCKOUTS, "ghost") is None
