"""
UTC normalization helpers.

All persisted timestamps are naive datetimes in UTC. Aware inputs are
converted to UTC and stripped of tzinfo; naive inputs are taken to already
be UTC (never local time).
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a timestamp to naive UTC.

    Args:
        value: Naive (assumed UTC) or aware datetime, or None

    Returns:
        Naive UTC datetime, or None when value is None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
