from __future__ import annotations

from typing import Optional

from sessionguard.core.sessions.models import ClientInfo, Session, SessionSummary


_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS


def time_remaining(expires_at: int, now_ms: int) -> str:
    remaining = int(expires_at) - int(now_ms)
    if remaining <= 0:
        return "Expired"
    hours = remaining // _HOUR_MS
    minutes = (remaining % _HOUR_MS) // _MINUTE_MS
    return f"{hours}h {minutes}m"


def urgency(remaining_ms: int) -> Optional[str]:
    if remaining_ms < 30 * _MINUTE_MS:
        return "critical"
    if remaining_ms < 2 * _HOUR_MS:
        return "warning"
    return None


def browser_display_name(client: Optional[ClientInfo]) -> str:
    if client is None or not (client.user_agent or client.platform):
        return "Unknown Browser"
    ua = client.user_agent or ""
    platform = client.platform or ""

    # Edge and Chrome user agents also carry "Chrome"/"Safari"
    browser = "Unknown"
    if "Edg" in ua:
        browser = "Edge"
    elif "Firefox" in ua:
        browser = "Firefox"
    elif "Chrome" in ua:
        browser = "Chrome"
    elif "Safari" in ua:
        browser = "Safari"

    os_name = platform
    if "Win" in platform:
        os_name = "Windows"
    elif "Mac" in platform:
        os_name = "macOS"
    elif "Linux" in platform:
        os_name = "Linux"
    return f"{browser} on {os_name}" if os_name else browser


def summarize(session: Session, now_ms: int) -> SessionSummary:
    return SessionSummary(
        session_id=session.session_id,
        identity=session.name,
        login_time=session.login_time,
        last_activity=session.last_activity,
        expires_at=session.expires_at,
        browser=browser_display_name(session.client),
        time_remaining=time_remaining(session.expires_at, now_ms),
    )
