from __future__ import annotations

import secrets
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from sessionguard.core.config.models import SharedConfig
from sessionguard.core.credentials.models import (
    ROLE_CAPABILITIES,
    ROLE_DURATIONS,
    IdentityRecord,
    SharedAccount,
    default_identities,
    default_shared_accounts,
)
from sessionguard.core.errors import NotFoundError, StoreUnavailableError, ValidationError
from sessionguard.core.store.records import IDENTITIES, SHARED_ACCOUNTS, RecordStore


def secrets_match(provided: str, expected: str) -> bool:
    return secrets.compare_digest(str(provided or "").encode("utf-8"), str(expected or "").encode("utf-8"))


class CredentialStore:
    """
    What the session engine needs from the account backend. Implementations
    may block on I/O; the authenticator bounds every call with a timeout.
    """

    def lookup(self, name: str) -> Optional[IdentityRecord]:
        raise NotImplementedError

    def record_login_success(self, name: str, timestamp: int) -> None:
        raise NotImplementedError

    def lookup_shared(self, name: str) -> Optional[SharedAccount]:
        raise NotImplementedError

    def record_shared_access(self, name: str, timestamp: int) -> None:
        raise NotImplementedError


class RecordCredentialStore(CredentialStore):
    """
    Credential store kept in the same RecordStore as the session tables.

    Records that no longer validate are skipped on read and reported through
    the logger; they never break a lookup for another identity.
    """

    def __init__(self, records: RecordStore, *, shared_cfg: Optional[SharedConfig] = None, logger=None, time_fn: Callable[[], float] = time.time):
        self.records = records
        self.shared_cfg = shared_cfg or SharedConfig()
        self.logger = logger
        self._time = time_fn
        self._lock = threading.Lock()

    # ---- engine-facing ----
    def lookup(self, name: str) -> Optional[IdentityRecord]:
        return self._parse(IdentityRecord, self.records.get(IDENTITIES, str(name)))

    def record_login_success(self, name: str, timestamp: int) -> None:
        with self._lock:
            rec = self.lookup(name)
            if rec is None:
                return
            rec.last_login = int(timestamp)
            self.records.set(IDENTITIES, rec.name, rec.model_dump())

    def lookup_shared(self, name: str) -> Optional[SharedAccount]:
        return self._parse(SharedAccount, self.records.get(SHARED_ACCOUNTS, str(name)))

    def record_shared_access(self, name: str, timestamp: int) -> None:
        with self._lock:
            acct = self.lookup_shared(name)
            if acct is None:
                return
            acct.total_logins += 1
            acct.last_access = int(timestamp)
            self.records.set(SHARED_ACCOUNTS, acct.name, acct.model_dump())

    # ---- administration ----
    def seed_defaults(self) -> int:
        """Install the stock accounts when both namespaces are empty."""
        if self.records.keys(IDENTITIES) or self.records.keys(SHARED_ACCOUNTS):
            return 0
        n = 0
        for ident in default_identities():
            self.records.set(IDENTITIES, ident.name, ident.model_dump())
            n += 1
        for acct in default_shared_accounts():
            self.records.set(SHARED_ACCOUNTS, acct.name, acct.model_dump())
            n += 1
        if self.logger:
            self.logger.info("seeded %d default accounts", n)
        return n

    def list_identities(self) -> List[IdentityRecord]:
        out = [self._parse(IdentityRecord, r) for _k, r in self.records.items(IDENTITIES)]
        return sorted([r for r in out if r is not None], key=lambda r: r.name)

    def create_identity(self, data: Dict[str, Any]) -> IdentityRecord:
        rec = self._validate(IdentityRecord, data)
        with self._lock:
            if self.records.get(IDENTITIES, rec.name) is not None:
                raise ValidationError("User already exists.", name=rec.name)
            self.records.set(IDENTITIES, rec.name, rec.model_dump())
        return rec

    def update_identity(self, name: str, updates: Dict[str, Any]) -> IdentityRecord:
        with self._lock:
            cur = self.lookup(name)
            if cur is None:
                raise NotFoundError("User not found.", name=name)
            rec = self._validate(IdentityRecord, {**cur.model_dump(), **updates, "name": cur.name})
            self.records.set(IDENTITIES, rec.name, rec.model_dump())
        return rec

    def delete_identity(self, name: str) -> bool:
        return self.records.delete(IDENTITIES, str(name))

    def list_shared_accounts(self) -> List[SharedAccount]:
        out = [self._parse(SharedAccount, r) for _k, r in self.records.items(SHARED_ACCOUNTS)]
        return sorted([a for a in out if a is not None], key=lambda a: a.name)

    def create_shared_account(self, data: Dict[str, Any]) -> SharedAccount:
        """
        Missing fields default from the account's role and shared type:
        capabilities and profile table by role, max_sessions by type.
        """
        role = str(data.get("role") or "user")
        shared_type = str(data.get("shared_type") or "testing")
        durations = dict(data.get("durations") or ROLE_DURATIONS.get(role, ROLE_DURATIONS["user"]))
        by_length = sorted(durations, key=lambda k: durations[k])
        filled: Dict[str, Any] = {
            "role": role,
            "shared_type": shared_type,
            "api_access": role != "guest",
            "capabilities": list(ROLE_CAPABILITIES.get(role, ROLE_CAPABILITIES["user"])),
            "durations": durations,
            # profile names must exist in the table
            "default_profile": "1hour" if "1hour" in durations else (by_length[0] if by_length else None),
            "max_profile": "8hours" if "8hours" in durations else (by_length[-1] if by_length else None),
            "max_sessions": self.shared_cfg.default_max_sessions_by_type.get(shared_type, self.shared_cfg.fallback_max_sessions),
            "description": f"Shared {shared_type} account",
            "total_logins": 0,
        }
        filled.update({k: v for k, v in data.items() if v is not None})
        acct = self._validate(SharedAccount, filled)
        with self._lock:
            if self.records.get(SHARED_ACCOUNTS, acct.name) is not None:
                raise ValidationError("Shared account already exists.", name=acct.name)
            self.records.set(SHARED_ACCOUNTS, acct.name, acct.model_dump())
        return acct

    def update_shared_account(self, name: str, updates: Dict[str, Any]) -> SharedAccount:
        with self._lock:
            cur = self.lookup_shared(name)
            if cur is None:
                raise NotFoundError("Shared account not found.", name=name)
            merged = {**cur.model_dump(), **updates, "name": cur.name, "updated_at": int(self._time() * 1000)}
            acct = self._validate(SharedAccount, merged)
            self.records.set(SHARED_ACCOUNTS, acct.name, acct.model_dump())
        return acct

    def delete_shared_account(self, name: str) -> bool:
        return self.records.delete(SHARED_ACCOUNTS, str(name))

    # ---- internals ----
    def _parse(self, model, raw: Optional[Dict[str, Any]]):  # noqa: ANN001
        if raw is None:
            return None
        try:
            return model.model_validate(raw)
        except PydanticValidationError as e:
            if self.logger:
                self.logger.error("skipping malformed %s record %r: %s", model.__name__, raw.get("name"), e.error_count())
            return None

    @staticmethod
    def _validate(model, data: Dict[str, Any]):  # noqa: ANN001
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError("Invalid account record.", errors=e.errors(include_url=False)) from e


class TimedCredentialStore(CredentialStore):
    """
    Bounds every engine-facing call on another CredentialStore. A timeout or
    any backend exception surfaces as StoreUnavailableError (retryable).
    """

    def __init__(self, inner: CredentialStore, *, timeout_seconds: float = 2.0, logger=None, max_workers: int = 4):
        self.inner = inner
        self.timeout_seconds = float(timeout_seconds)
        self.logger = logger
        self._exec = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="credential-lookup")

    def lookup(self, name: str) -> Optional[IdentityRecord]:
        return self._call("lookup", self.inner.lookup, name)

    def record_login_success(self, name: str, timestamp: int) -> None:
        self._call("record_login_success", self.inner.record_login_success, name, timestamp)

    def lookup_shared(self, name: str) -> Optional[SharedAccount]:
        return self._call("lookup_shared", self.inner.lookup_shared, name)

    def record_shared_access(self, name: str, timestamp: int) -> None:
        self._call("record_shared_access", self.inner.record_shared_access, name, timestamp)

    def shutdown(self) -> None:
        self._exec.shutdown(wait=False, cancel_futures=True)

    def _call(self, op: str, fn: Callable[..., Any], *args: Any) -> Any:
        fut = self._exec.submit(fn, *args)
        try:
            return fut.result(timeout=self.timeout_seconds)
        except FutureTimeout as e:
            fut.cancel()
            if self.logger:
                self.logger.error("credential store %s timed out after %.2fs", op, self.timeout_seconds)
            raise StoreUnavailableError(operation=op, reason="timeout") from e
        except Exception as e:  # noqa: BLE001
            if self.logger:
                self.logger.error("credential store %s failed: %s", op, e)
            raise StoreUnavailableError(operation=op, reason=type(e).__name__) from e
