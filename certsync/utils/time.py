"""UTC timestamp helpers.

Timestamps are stored naive in UTC (SQLite drops tzinfo); remote values
arrive timezone-aware and are normalized before comparison.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive-UTC datetime to naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_utc(value: datetime) -> str:
    """Render a naive-UTC datetime as an ISO 8601 string with offset."""
    return to_naive_utc(value).replace(tzinfo=timezone.utc).isoformat()
