from sessionguard.core.shared.limiter import ConcurrencyLimiter

__all__ = ["ConcurrencyLimiter"]
