from sessionguard.core.store.records import (
    CURRENT,
    IDENTITIES,
    LOCKOUTS,
    SESSIONS,
    SETTINGS,
    SHARED_ACCOUNTS,
    JsonFileRecordStore,
    MemoryRecordStore,
    Record,
    RecordStore,
)

__all__ = [
    "CURRENT",
    "IDENTITIES",
    "LOCKOUTS",
    "SESSIONS",
    "SETTINGS",
    "SHARED_ACCOUNTS",
    "JsonFileRecordStore",
    "MemoryRecordStore",
    "Record",
    "RecordStore",
]
