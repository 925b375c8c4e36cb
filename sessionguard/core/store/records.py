from __future__ import annotations

import copy
import os
import threading
import time
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sessionguard.core.config.io import atomic_write_json, quarantine_corrupt, read_json_file


Record = Dict[str, Any]

SESSIONS = "sessions"
CURRENT = "current"
LOCKOUTS = "lockouts"
SETTINGS = "settings"
IDENTITIES = "identities"
SHARED_ACCOUNTS = "shared_accounts"


class RecordStore:
    """
    Table/key storage of opaque JSON records. Only get/set/delete/items are
    required, so any key-value backend can stand in.
    """

    def get(self, table: str, key: str) -> Optional[Record]:
        raise NotImplementedError

    def set(self, table: str, key: str, record: Record) -> None:
        raise NotImplementedError

    def delete(self, table: str, key: str) -> bool:
        raise NotImplementedError

    def items(self, table: str) -> List[Tuple[str, Record]]:
        raise NotImplementedError

    def keys(self, table: str) -> List[str]:
        return [k for k, _ in self.items(table)]

    def iter_records(self, table: str) -> Iterator[Record]:
        for _k, rec in self.items(table):
            yield rec


class MemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tables: Dict[str, Dict[str, Record]] = {}

    def get(self, table: str, key: str) -> Optional[Record]:
        with self._lock:
            rec = self._tables.get(table, {}).get(key)
            return copy.deepcopy(rec) if rec is not None else None

    def set(self, table: str, key: str, record: Record) -> None:
        with self._lock:
            self._tables.setdefault(table, {})[key] = copy.deepcopy(record)

    def delete(self, table: str, key: str) -> bool:
        with self._lock:
            return self._tables.get(table, {}).pop(key, None) is not None

    def items(self, table: str) -> List[Tuple[str, Record]]:
        with self._lock:
            return [(k, copy.deepcopy(v)) for k, v in self._tables.get(table, {}).items()]


class JsonFileRecordStore(RecordStore):
    """
    Single JSON document on disk shared by every client pointed at it.

    - each read reloads the file, so writes from other processes are observed
    - each write goes to a temp file and is swapped in with os.replace
    - a corrupt document is moved to backups/ and read as empty
    """

    def __init__(self, path: str, *, backups_dir: Optional[str] = None, logger=None):
        self.path = path
        self.backups_dir = backups_dir or os.path.join(os.path.dirname(path) or ".", "backups")
        self.logger = logger
        self._lock = threading.RLock()

    def get(self, table: str, key: str) -> Optional[Record]:
        with self._lock:
            rec = self._load().get(table, {}).get(key)
            return rec if isinstance(rec, dict) else None

    def set(self, table: str, key: str, record: Record) -> None:
        with self._lock:
            doc = self._load()
            doc.setdefault(table, {})[key] = record
            self._write(doc)

    def delete(self, table: str, key: str) -> bool:
        with self._lock:
            doc = self._load()
            if key not in doc.get(table, {}):
                return False
            del doc[table][key]
            self._write(doc)
            return True

    def items(self, table: str) -> List[Tuple[str, Record]]:
        with self._lock:
            rows = self._load().get(table, {})
            return [(k, v) for k, v in rows.items() if isinstance(v, dict)]

    # ---- internals ----
    def _load(self) -> Dict[str, Dict[str, Record]]:
        rr = read_json_file(self.path)
        if rr.error == "missing":
            return {}
        if not rr.ok:
            if rr.error == "not_object" or str(rr.error).startswith("corrupt_json"):
                self._quarantine(str(rr.error))
                return {}
            raise OSError(f"record store {self.path} unreadable: {rr.error}")
        tables = rr.data.get("tables")
        if not isinstance(tables, dict):
            self._quarantine("no_tables")
            return {}
        return {str(t): rows for t, rows in tables.items() if isinstance(rows, dict)}

    def _write(self, tables: Dict[str, Dict[str, Record]]) -> None:
        atomic_write_json(self.path, {"store_version": 1, "updated_at": time.time(), "tables": tables})

    def _quarantine(self, reason: str) -> None:
        dst = quarantine_corrupt(self.path, self.backups_dir)
        if dst and self.logger:
            self.logger.error("record store %s unreadable (%s); moved to %s", self.path, reason, dst)
