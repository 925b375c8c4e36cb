from sessionguard.core.credentials.models import IdentityRecord, SharedAccount
from sessionguard.core.credentials.store import CredentialStore, RecordCredentialStore, TimedCredentialStore, secrets_match

__all__ = ["CredentialStore", "IdentityRecord", "RecordCredentialStore", "SharedAccount", "TimedCredentialStore", "secrets_match"]
