"""Time sources and timestamp helpers."""
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from ..auth.exceptions import InvalidTimestampError

Timestamp = Union[datetime, int, float]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite hands them back naive)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_unix_seconds(timestamp: Timestamp) -> int:
    """Whole Unix seconds for a datetime or numeric timestamp.

    Raises InvalidTimestampError for anything before the epoch.
    """
    if isinstance(timestamp, datetime):
        seconds = as_utc(timestamp).timestamp()
    elif isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
        seconds = float(timestamp)
    else:
        raise InvalidTimestampError(f"Unsupported timestamp type: {type(timestamp).__name__}")
    if seconds < 0:
        raise InvalidTimestampError("Timestamp precedes the Unix epoch")
    return int(seconds)


def remaining_seconds(now: Timestamp, period: int = 30) -> int:
    """Seconds until the current time step ends, in 1..period."""
    if period <= 0:
        raise ValueError("period must be positive")
    return period - (to_unix_seconds(now) % period)


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """Manually driven clock for hosts that replay or simulate time."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = as_utc(start) if start else utcnow()

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = as_utc(value)

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, **kwargs)
        return self._now
