from __future__ import annotations

import sys

from sessionguard.core.config import ConfigManager
from sessionguard.core.config.paths import ConfigFsPaths
from sessionguard.core.lockout.guard import LockoutGuard
from sessionguard.core.security_events import SecurityAuditLogger
from sessionguard.core.store.records import JsonFileRecordStore


def main() -> None:
    if len(sys.argv) < 2:
        raise SystemExit("Usage: python scripts/unlock_identity.py <identity>|--list")

    fs = ConfigFsPaths(".")
    cfg = ConfigManager(fs=fs, logger=None, read_only=True).load_all()
    store = JsonFileRecordStore(fs.resolve(cfg.store.path))
    guard = LockoutGuard(store, cfg=cfg.security.lockout, audit_logger=SecurityAuditLogger(path=fs.resolve(cfg.security.audit_log_path)))

    arg = sys.argv[1].strip()
    if arg == "--list":
        rows = guard.locked_identities()
        if not rows:
            print("No identities are locked out.")
        for r in rows:
            print(f"{r['identity']}: {r['attempts']} attempts, {r['remaining_ms'] // 60000} min remaining")
        return

    if not arg:
        raise SystemExit("Identity cannot be empty.")
    was_locked = guard.unlock(arg, actor="cli")
    print(f"Unlocked: {arg}" if was_locked else f"{arg} was not locked out (attempts cleared).")


if __name__ == "__main__":
    main()
