"""UTC time helpers shared by the timeline, persistence and web layers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite hands them back naive)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse ISO-8601 text (``Z`` suffix accepted) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def minutes(value: float) -> timedelta:
    return timedelta(minutes=value)


def seconds_until(end: Optional[datetime], now: datetime) -> int:
    """Whole seconds remaining until ``end``, never negative."""
    if end is None:
        return 0
    return max(0, int((end - now).total_seconds()))
