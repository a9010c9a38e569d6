"""
Time helpers.

Every instant is persisted as a naive UTC datetime so values read back from
SQLite and PostgreSQL compare the same way.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current instant as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
