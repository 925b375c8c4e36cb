"""
Session change notifications.

The registry publishes, observers (selectors, admin views, the audit trail)
subscribe and pull a fresh snapshot when notified.
"""

from sessionguard.core.events.bus import EventBus, EventBusConfig, OverflowPolicy
from sessionguard.core.events.models import BaseEvent, EventSeverity, EventSource
from sessionguard.core.events.redaction import redact

__all__ = [
    "BaseEvent",
    "EventBus",
    "EventBusConfig",
    "EventSeverity",
    "EventSource",
    "OverflowPolicy",
    "redact",
]
