from __future__ import annotations

import time
from typing import Any, Callable, Optional

from sessionguard.core.auth.authenticator import Authenticator, default_chain
from sessionguard.core.config.models import AppConfig
from sessionguard.core.conflict.engine import ConflictPolicyEngine
from sessionguard.core.credentials.store import CredentialStore, RecordCredentialStore, TimedCredentialStore
from sessionguard.core.lockout.guard import LockoutGuard
from sessionguard.core.security_events import SecurityAuditLogger
from sessionguard.core.sessions.registry import SessionRegistry
from sessionguard.core.shared.limiter import ConcurrencyLimiter
from sessionguard.core.store.records import RecordStore


def build_authenticator(
    cfg: AppConfig,
    store: RecordStore,
    *,
    credentials: Optional[CredentialStore] = None,
    audit_logger: Optional[SecurityAuditLogger] = None,
    event_bus: Any = None,
    logger=None,
    time_fn: Callable[[], float] = time.time,
) -> Authenticator:
    """
    Wires the default graph over one RecordStore. When no credential store
    is given, accounts live in the same store (seeded on first run if
    configured). Every engine-facing credential call goes through a
    TimedCredentialStore.
    """
    accounts: Optional[RecordCredentialStore] = None
    if credentials is None:
        accounts = RecordCredentialStore(store, shared_cfg=cfg.security.shared, logger=logger, time_fn=time_fn)
        if cfg.store.seed_defaults:
            accounts.seed_defaults()
        credentials = accounts
    elif isinstance(credentials, RecordCredentialStore):
        accounts = credentials
    timed = TimedCredentialStore(credentials, timeout_seconds=cfg.store.credential_timeout_seconds, logger=logger)

    registry = SessionRegistry(store, cfg=cfg.sessions, logger=logger, event_bus=event_bus, time_fn=time_fn)
    lockout = LockoutGuard(store, cfg=cfg.security.lockout, logger=logger, audit_logger=audit_logger, event_bus=event_bus, time_fn=time_fn)
    conflict = ConflictPolicyEngine(registry, store, cfg=cfg.security.conflict, logger=logger, event_bus=event_bus)
    limiter = ConcurrencyLimiter(registry, timed, accounts=accounts, cfg=cfg.security.shared, logger=logger, event_bus=event_bus)

    return Authenticator(
        checks=default_chain(credentials=timed, lockout=lockout, conflict=conflict, limiter=limiter, logger=logger),
        credentials=timed,
        registry=registry,
        lockout=lockout,
        conflict=conflict,
        limiter=limiter,
        audit_logger=audit_logger,
        event_bus=event_bus,
        logger=logger,
    )
