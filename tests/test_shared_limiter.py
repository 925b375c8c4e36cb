from __future__ import annotations

import threading

import pytest

from sessionguard.core.auth.outcomes import OutcomeKind
from sessionguard.core.errors import NotFoundError
from sessionguard.core.sessions.models import ClientInfo


def _duo(auth, **extra):
    data = {"name": "duo", "secret": "pair", "shared_type": "team", "max_sessions": 2, "durations": {"30min": 30 * 60 * 1000}}
    data.update(extra)
    return auth.limiter.accounts.create_shared_account(data)


def test_limit_is_enforced_per_account(auth, bus):
    _duo(auth)
    a = auth.authenticate("duo", "pair", client=ClientInfo(client_id="u1"))
    b = auth.authenticate("duo", "pair", client=ClientInfo(client_id="u2"))
    assert a.ok and b.ok
    assert a.shared is True
    assert a.session.session_id != b.session.session_id

    c = auth.authenticate("duo", "pair", client=ClientInfo(client_id="u3"))
    assert c.kind == OutcomeKind.limit_reached
    assert (c.current, c.max, c.shared_type) == (2, 2, "team")
    assert c.retryable is True
    assert "limit of 2" in c.message
    assert len(auth.registry.sessions_for("duo", shared=True)) == 2
    assert "shared.limit_reached" in bus.types()


def test_shared_logins_never_conflict(auth):
    auth.set_conflict_policy("prevent")
    for i in range(3):
        assert auth.authenticate("test", "test123", client=ClientInfo(client_id=f"c{i}")).ok
    assert len(auth.registry.sessions_for("test")) == 3


def test_slot_frees_after_termination_and_expiry(auth, clock):
    _duo(auth)
    first = auth.authenticate("duo", "pair")
    auth.authenticate("duo", "pair")
    assert auth.authenticate("duo", "pair").kind == OutcomeKind.limit_reached

    assert auth.terminate_session(first.session.session_id) is True
    assert auth.authenticate("duo", "pair").ok
    assert auth.authenticate("duo", "pair").kind == OutcomeKind.limit_reached

    clock.advance(30 * 60)
    assert auth.authenticate("duo", "pair").ok


def test_unknown_account_and_wrong_secret_look_the_same(auth):
    _duo(auth)
    wrong = auth.authenticate("duo", "nope")
    unknown = auth.authenticate("nobody", "pair")
    assert wrong.kind == unknown.kind == OutcomeKind.invalid_credential
    assert wrong.message == unknown.message


def test_wrong_secret_counts_toward_lockout(auth):
    _duo(auth)
    for _ in range(5):
        auth.authenticate("duo", "nope")
    out = auth.authenticate("duo", "pair")
    assert out.kind == OutcomeKind.locked_out
    assert out.shared is True


def test_access_bookkeeping(auth, clock):
    _duo(auth)
    auth.authenticate("duo", "pair")
    clock.advance(10)
    auth.authenticate("duo", "pair")
    acct = auth.limiter.accounts.lookup_shared("duo")
    assert acct.total_logins == 2
    assert acct.last_access == clock.now_ms()


def test_rejected_login_is_not_bookkept(auth):
    _duo(auth, max_sessions=1)
    auth.authenticate("duo", "pair")
    auth.authenticate("duo", "pair")
    assert auth.limiter.accounts.lookup_shared("duo").total_logins == 1


def test_racing_logins_admit_exactly_max(auth):
    _duo(auth, max_sessions=3)
    results = []
    lock = threading.Lock()
    start = threading.Barrier(8)

    def worker(i: int) -> None:
        start.wait()
        out = auth.authenticate("duo", "pair", client=ClientInfo(client_id=f"r{i}"))
        with lock:
            results.append(out.kind)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert results.count(OutcomeKind.success) == 3
    assert results.count(OutcomeKind.limit_reached) == 5
    assert len(auth.registry.sessions_for("duo", shared=True)) == 3


def test_usage_rows(auth):
    _duo(auth)
    auth.authenticate("duo", "pair")
    row = auth.limiter.usage("duo")
    assert row["active_sessions"] == 1
    assert row["max_sessions"] == 2
    assert row["utilization_percent"] == 50
    assert row["is_near_limit"] is False
    assert row["is_at_limit"] is False

    auth.authenticate("duo", "pair")
    row = auth.limiter.usage("duo")
    assert row["is_near_limit"] is True
    assert row["is_at_limit"] is True

    every = auth.limiter.usage_all()
    assert {"test", "presenter", "giveaway", "team", "duo"} <= set(every)
    assert every["test"]["max_sessions"] == 10

    with pytest.raises(NotFoundError):
        auth.limiter.usage("nobody")


def test_delete_account_terminates_its_sessions(auth):
    _duo(auth)
    auth.authenticate("duo", "pair")
    auth.authenticate("duo", "pair")
    other = auth.authenticate("test", "test123")

    assert auth.limiter.delete_account("duo") == 2
    assert auth.limiter.accounts.lookup_shared("duo") is None
    assert auth.registry.sessions_for("duo") == []
    assert auth.registry.get(other.session.session_id) is not None
    assert auth.authenticate("duo", "pair").kind == OutcomeKind.invalid_credential
    with pytest.raises(NotFoundError):
        auth.limiter.delete_account("duo")


def test_created_account_defaults_follow_role_and_type(auth):
    acct = auth.limiter.accounts.create_shared_account({"name": "crowd", "secret": "s", "shared_type": "giveaway", "role": "guest"})
    assert acct.max_sessions == 50
    assert acct.api_access is False
    assert acct.description == "Shared giveaway account"
    assert acct.default_profile == "1hour"
    assert acct.default_profile in acct.durations

    acct = auth.limiter.accounts.create_shared_account({"name": "other", "secret": "s", "shared_type": "mystery"})
    assert acct.max_sessions == 5
    assert acct.default_profile in acct.durations
    assert acct.max_profile == "8hours"


def test_shared_session_duration_uses_account_profiles(auth):
    out = auth.authenticate("presenter", "demo2024", "30min")
    assert out.session.duration_profile == "30min"
    assert out.session.expires_at - out.session.login_time == 30 * 60 * 1000
    out = auth.authenticate("presenter", "demo2024")
    assert out.session.duration_profile == "2hours"


def test_failed_access_bookkeeping_does_not_undo_shared_login(make_auth):
    from sessionguard.core.credentials.models import SharedAccount

    from .helpers.fakes import FlakyCredentialStore

    class AccessWriteFails(FlakyCredentialStore):
        def lookup_shared(self, name):  # noqa: ANN001
            if name == "duo":
                return SharedAccount(name="duo", secret="pair", shared_type="team", max_sessions=1)
            return None

        def record_shared_access(self, name, timestamp):  # noqa: ANN001
            raise ConnectionError("read-only replica")

    auth = make_auth(credentials=AccessWriteFails())
    out = auth.authenticate("duo", "pair", client=ClientInfo(client_id="u1"))
    assert out.ok and out.shared
    assert auth.registry.get(out.session.session_id) is not None
    assert auth.authenticate("duo", "pair", client=ClientInfo(client_id="u2")).kind == OutcomeKind.limit_reached
