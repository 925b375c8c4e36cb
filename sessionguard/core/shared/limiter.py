from __future__ import annotations

from typing import Any, Dict, Optional

from sessionguard.core.config.models import SharedConfig
from sessionguard.core.credentials.models import SharedAccount
from sessionguard.core.credentials.store import CredentialStore, RecordCredentialStore, secrets_match
from sessionguard.core.errors import ConcurrencyLimitReachedError, InvalidCredentialError, NotFoundError, StoreUnavailableError
from sessionguard.core.events.models import SHARED_LIMIT_REACHED, BaseEvent, EventSeverity, EventSource
from sessionguard.core.sessions.models import ClientInfo, IdentitySnapshot, Namespace, Session
from sessionguard.core.sessions.registry import SessionRegistry


class ConcurrencyLimiter:
    """
    Admission for shared accounts: many simultaneous sessions up to the
    account's max_sessions, no exclusivity and no conflict policy.

    Count and create happen under the shared-namespace lock, so two racing
    logins can never both take the last slot.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        credentials: CredentialStore,
        *,
        accounts: Optional[RecordCredentialStore] = None,
        cfg: Optional[SharedConfig] = None,
        logger=None,
        event_bus: Any = None,
    ):
        self.registry = registry
        self.credentials = credentials
        self.accounts = accounts
        self.cfg = cfg or SharedConfig()
        self.logger = logger
        self.event_bus = event_bus

    def admit(
        self,
        account: Optional[SharedAccount],
        secret: str,
        duration_profile: Optional[str] = None,
        client: Optional[ClientInfo] = None,
    ) -> Session:
        if account is None or not secrets_match(secret, account.secret):
            raise InvalidCredentialError()
        with self.registry.exclusive(Namespace.shared):
            current = len(self.registry.sessions_for(account.name, shared=True))
            if current >= int(account.max_sessions):
                self._limit_reached(account, current)
                raise ConcurrencyLimitReachedError(
                    identity=account.name, current=current, maximum=int(account.max_sessions), shared_type=account.shared_type
                )
            session = self.registry.create(IdentitySnapshot.from_identity(account), duration_profile, client)
        # the session already exists here; a failed write is only logged
        try:
            self.credentials.record_shared_access(account.name, session.login_time)
        except StoreUnavailableError as e:
            if self.logger:
                self.logger.warning("could not record access for shared account %s: %s", account.name, e.context.get("reason"))
        if self.logger:
            self.logger.info("shared account %s admitted (%d/%d)", account.name, current + 1, account.max_sessions)
        return session

    # ---- usage ----
    def usage(self, name: str) -> Dict[str, Any]:
        acct = self._admin().lookup_shared(name)
        if acct is None:
            raise NotFoundError("Shared account not found.", name=name)
        return self._usage_row(acct)

    def usage_all(self) -> Dict[str, Dict[str, Any]]:
        return {a.name: self._usage_row(a) for a in self._admin().list_shared_accounts()}

    def terminate_sessions(self, name: str) -> int:
        with self.registry.exclusive(Namespace.shared):
            n = self.registry.terminate_all_for(name, shared=True, reason="terminated")
        if n and self.logger:
            self.logger.info("terminated %d session(s) of shared account %s", n, name)
        return n

    def delete_account(self, name: str) -> int:
        """Terminates the account's sessions, then deletes it."""
        admin = self._admin()
        if admin.lookup_shared(name) is None:
            raise NotFoundError("Shared account not found.", name=name)
        n = self.terminate_sessions(name)
        admin.delete_shared_account(name)
        if self.logger:
            self.logger.info("shared account %s deleted", name)
        return n

    # ---- internals ----
    def _admin(self) -> RecordCredentialStore:
        if self.accounts is None:
            raise NotFoundError("Shared account administration is not available.")
        return self.accounts

    def _usage_row(self, acct: SharedAccount) -> Dict[str, Any]:
        active = len(self.registry.sessions_for(acct.name, shared=True))
        maximum = int(acct.max_sessions)
        return {
            "shared_type": acct.shared_type,
            "description": acct.description,
            "active_sessions": active,
            "max_sessions": maximum,
            "utilization_percent": round(active / maximum * 100),
            "is_near_limit": active >= maximum * float(self.cfg.near_limit_ratio),
            "is_at_limit": active >= maximum,
            "total_logins": acct.total_logins,
            "last_access": acct.last_access,
        }

    def _limit_reached(self, acct: SharedAccount, current: int) -> None:
        if self.logger:
            self.logger.warning("shared account %s at limit (%d/%d)", acct.name, current, acct.max_sessions)
        if self.event_bus is not None:
            self.event_bus.publish(
                BaseEvent(
                    event_type=SHARED_LIMIT_REACHED,
                    source=EventSource.shared,
                    severity=EventSeverity.WARN,
                    payload={"identity": acct.name, "current": current, "max": int(acct.max_sessions), "shared_type": acct.shared_type},
                )
            )
