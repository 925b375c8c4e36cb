from __future__ import annotations

import os

import pytest

from sessionguard.core.auth.service import build_authenticator
from sessionguard.core.config.models import AppConfig
from sessionguard.core.security_events import SecurityAuditLogger
from sessionguard.core.store.records import MemoryRecordStore

from .helpers.fakes import FakeClock, RecordingBus, alice_record


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def records():
    return MemoryRecordStore()


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def audit_path(tmp_path):
    return os.path.join(str(tmp_path), "logs", "security.jsonl")


@pytest.fixture
def make_auth(clock, records, bus, audit_path):
    """
    Builds the default authenticator graph over the shared in-memory store,
    driven by the fake clock. Seeded accounts are installed plus alice.
    """
    built = []

    def _make(*, cfg=None, credentials=None, with_alice: bool = True):
        cfg = cfg or AppConfig()
        auth = build_authenticator(
            cfg,
            records,
            credentials=credentials,
            audit_logger=SecurityAuditLogger(path=audit_path),
            event_bus=bus,
            time_fn=clock.time,
        )
        if with_alice and auth.limiter.accounts is not None and auth.limiter.accounts.lookup("alice") is None:
            auth.limiter.accounts.create_identity(alice_record())
        built.append(auth)
        return auth

    yield _make
    for a in built:
        a.credentials.shutdown()


@pytest.fixture
def auth(make_auth):
    return make_auth()
