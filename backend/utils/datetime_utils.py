"""
Datetime utility functions for comparing and serializing event timestamps
"""
from datetime import datetime, timezone
from typing import Optional
import logging

logger = logging.getLogger(__name__)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to naive UTC.

    Reports arrive from many sources, some with offsets and some without.
    Naive values are assumed to already be UTC so that any two timestamps
    can be subtracted.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def hours_between(a: datetime, b: datetime) -> float:
    """Absolute difference in hours between two timestamps"""
    delta = to_naive_utc(a) - to_naive_utc(b)
    return abs(delta.total_seconds()) / 3600.0


def utcnow() -> datetime:
    """Naive UTC now, matching the normalization above"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
