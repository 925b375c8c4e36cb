from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sessionguard.core.events.redaction import redact


@dataclass(frozen=True)
class SecurityAuditLogger:
    """
    Append-only JSONL trail of authentication decisions. One line per outcome.
    """

    path: str = os.path.join("logs", "security.jsonl")
    _lock: threading.Lock = field(default_factory=threading.Lock, compare=False, repr=False)

    def log(
        self,
        *,
        event: str,
        identity: Optional[str],
        outcome: str,
        client_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "event": event,
            "identity": identity,
            "client_id": client_id,
            "outcome": outcome,
            "details": redact(details or {}),
        }
        line = json.dumps(payload, ensure_ascii=False)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
