"""
Grouping Stage
==============

Deterministic first pass that partitions a batch into coarse buckets so that
clustering only compares events that share a bucket.

Bucket key: CATEGORY|normalized_area|YYYY-MM-DD_h<hour // window>

Known limitation: two reports of one occurrence that straddle a window or
area-name boundary land in different buckets and are never compared. The
window is a tunable parameter; widening it raises comparison cost.
"""

import re
from typing import Dict, List

from .types import RawEvent

UNKNOWN_CATEGORY = "UNKNOWN"
UNKNOWN_AREA = "unknown_area"
UNKNOWN_TIME = "unknown_time"

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_area(area: str) -> str:
    return _WHITESPACE_RE.sub("_", area.strip().lower())


def bucket_key(event: RawEvent, window_hours: int = 2) -> str:
    category = event.category.value if event.category else UNKNOWN_CATEGORY

    area = event.area
    area_key = normalize_area(area) if area and area.strip() else UNKNOWN_AREA

    if event.timestamp is not None:
        window = event.timestamp.hour // max(1, window_hours)
        time_key = f"{event.timestamp.date().isoformat()}_h{window}"
    else:
        time_key = UNKNOWN_TIME

    return f"{category}|{area_key}|{time_key}"


def group_events(events: List[RawEvent], window_hours: int = 2) -> Dict[str, List[RawEvent]]:
    """
    Total function: every event lands in exactly one bucket, arrival order
    is preserved within each bucket.
    """
    buckets: Dict[str, List[RawEvent]] = {}
    for event in events:
        buckets.setdefault(bucket_key(event, window_hours), []).append(event)
    return buckets
