from sessionguard.core.lockout.guard import NOT_LOCKED, LockoutGuard, LockoutRecord

__all__ = ["LockoutGuard", "LockoutRecord", "NOT_LOCKED"]
