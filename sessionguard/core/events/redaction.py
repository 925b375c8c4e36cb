from __future__ import annotations

from typing import Any, Dict


REDACTED = "***REDACTED***"

SECRET_KEYS = {
    "secret",
    "password",
    "passphrase",
    "credential",
    "token",
    "api_key",
    "authorization",
}


def redact(obj: Any) -> Any:
    """
    Return a copy of `obj` with every secret-bearing key masked (recursive).
    """
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            if str(k).lower() in SECRET_KEYS:
                out[k] = REDACTED
            else:
                out[k] = redact(v)
        return out
    if isinstance(obj, (list, tuple)):
        return [redact(x) for x in obj]
    return obj
