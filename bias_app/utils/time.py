"""
Time helpers for event windows and record timestamps.

All stored timestamps are timezone-aware UTC. The New York wall clock is
exposed for display fields only, since the alert feeds are US futures.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

NEW_YORK = ZoneInfo("America/New_York")


def utc_now() -> datetime:
    """Current wall-clock time in UTC."""
    return datetime.now(timezone.utc)


def ny_now() -> datetime:
    """Current wall-clock time in America/New_York."""
    return utc_now().astimezone(NEW_YORK)


def ensure_utc(ts: Optional[datetime], fallback: Optional[datetime] = None) -> datetime:
    """
    Normalize a timestamp to aware UTC.

    Naive datetimes are interpreted as UTC. A missing timestamp falls back to
    ``fallback`` and then to the current wall-clock time.
    """
    if ts is None:
        ts = fallback if fallback is not None else utc_now()
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def lookback_window(hours: float, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """
    Return the (since, until) window covering the last ``hours`` hours.

    Args:
        hours: Window length in hours, must be positive
        now: Window end, defaults to the current time

    Returns:
        Tuple of aware UTC datetimes
    """
    if hours <= 0:
        raise ValueError(f"Lookback hours must be positive, got {hours}")

    until = ensure_utc(now)
    return until - timedelta(hours=hours), until


def format_time(ts: datetime) -> str:
    """Format a timestamp as an ISO-8601 UTC string."""
    return ensure_utc(ts).isoformat()


def parse_time(value: str) -> datetime:
    """Parse an ISO-8601 string produced by ``format_time``."""
    return ensure_utc(datetime.fromisoformat(value))
