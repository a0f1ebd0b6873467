"""
Time utilities.

Every timestamp produced by the engine (discoveries, signals, positions,
closed trades) is a timezone-aware UTC datetime.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current wall-clock time as a UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """
    Attach UTC to naive datetimes and convert aware ones to UTC.

    Args:
        ts: Timestamp from a venue or from storage

    Returns:
        Timezone-aware UTC datetime
    """
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def elapsed_seconds(start_time: datetime, end_time: Optional[datetime] = None) -> float:
    """
    Calculate elapsed time in seconds between two timestamps.

    Args:
        start_time: Start timestamp
        end_time: End timestamp, defaults to now

    Returns:
        Elapsed time in seconds
    """
    if end_time is None:
        end_time = utc_now()

    return (end_time - start_time).total_seconds()


def format_time(ts: Optional[datetime]) -> Optional[str]:
    """ISO8601 representation used in events and storage."""
    return ts.isoformat(timespec="microseconds") if ts is not None else None


def parse_time(value: Optional[str]) -> Optional[datetime]:
    """Inverse of ``format_time``."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))
