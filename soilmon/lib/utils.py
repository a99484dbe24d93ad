"""Shared utility functions."""
from datetime import UTC, datetime

# SQLite datetime format (space separator, not T)
SQLITE_DATETIME_FMT = "%Y-%m-%d %H:%M:%S"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime the way SQLite's CURRENT_TIMESTAMP stores it."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.strftime(SQLITE_DATETIME_FMT)


def epoch_ms(dt: datetime) -> int:
    """Return milliseconds since the Unix epoch for a datetime."""
    return int(dt.timestamp() * 1000)
