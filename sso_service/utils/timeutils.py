"""Time helpers"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime | None) -> datetime | None:
    """
    Attach UTC to a naive datetime

    SQLite drops tzinfo on round-trip, so values read back from the store
    are normalized before comparison with ``utcnow()``.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
