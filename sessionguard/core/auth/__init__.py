from sessionguard.core.auth.authenticator import (
    AdmissionCheck,
    Authenticator,
    CredentialCheck,
    LockoutCheck,
    LoginAttempt,
    SharedAccountResolution,
    default_chain,
)
from sessionguard.core.auth.outcomes import AuthOutcome, OutcomeKind
from sessionguard.core.auth.service import build_authenticator

__all__ = [
    "AdmissionCheck",
    "AuthOutcome",
    "Authenticator",
    "CredentialCheck",
    "LockoutCheck",
    "LoginAttempt",
    "OutcomeKind",
    "SharedAccountResolution",
    "build_authenticator",
    "default_chain",
]
