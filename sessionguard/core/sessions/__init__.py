from sessionguard.core.sessions.format import browser_display_name, summarize, time_remaining, urgency
from sessionguard.core.sessions.models import ClientInfo, IdentitySnapshot, Namespace, Session, SessionSummary, SessionView
from sessionguard.core.sessions.registry import SessionRegistry
from sessionguard.core.sessions.sweeper import ExpirySweeper

__all__ = [
    "ClientInfo",
    "ExpirySweeper",
    "IdentitySnapshot",
    "Namespace",
    "Session",
    "SessionRegistry",
    "SessionSummary",
    "SessionView",
    "browser_display_name",
    "summarize",
    "time_remaining",
    "urgency",
]
