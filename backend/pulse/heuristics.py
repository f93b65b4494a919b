"""
Similarity Heuristics
=====================

Pure functions used by clustering: geographic proximity, time proximity and
lexical overlap. No external calls, no state.

The lexical score is the deterministic fallback when the classification
gateway cannot answer a similarity question.
"""

import math
import re
from datetime import datetime
from typing import Iterable, Optional, Set

from utils.datetime_utils import hours_between

from .types import Location, Parameters, RawEvent

EARTH_RADIUS_KM = 6371.0

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    lat_d = math.radians(lat2 - lat1)
    lon_d = math.radians(lon2 - lon1)
    a = (math.sin(lat_d / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
         * math.sin(lon_d / 2) ** 2)
    # rounding can push antipodal pairs just past 1.0
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def locations_proximate(
    a: Optional[Location],
    b: Optional[Location],
    radius_km: float = 2.0
) -> bool:
    """
    Permissive location test.

    Unknown on either side counts as proximate. Two area names decide on
    their own (case-insensitive equality); coordinates are only consulted
    when the areas cannot be compared.
    """
    if a is None or b is None:
        return True

    if a.area is not None and b.area is not None:
        return a.area.strip().lower() == b.area.strip().lower()

    if a.has_coordinates and b.has_coordinates:
        return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude) <= radius_km

    return True


def timestamps_proximate(
    a: Optional[datetime],
    b: Optional[datetime],
    window_hours: float = 4.0
) -> bool:
    """Unknown on either side counts as proximate."""
    if a is None or b is None:
        return True
    return hours_between(a, b) <= window_hours


def tokenize(text: Optional[str]) -> Set[str]:
    """Lowercase alphanumeric tokens."""
    if not text:
        return set()
    return set(_TOKEN_RE.findall(text.lower()))


def jaccard(a: Set[str], b: Set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def text_similarity(a: Optional[str], b: Optional[str]) -> float:
    if a is None or b is None:
        return 0.0
    return jaccard(tokenize(a), tokenize(b))


def keyword_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    if not a or not b:
        return 0.0
    return jaccard(tokenize(" ".join(a)), tokenize(" ".join(b)))


def heuristic_score(a: RawEvent, b: RawEvent, params: Parameters = Parameters()) -> float:
    """
    Weighted lexical overlap:
        0.4 * title + 0.4 * description + 0.2 * keywords
    """
    return (
        params.title_weight * text_similarity(a.title, b.title)
        + params.description_weight * text_similarity(a.description, b.description)
        + params.keyword_weight * keyword_similarity(a.keywords, b.keywords)
    )


def heuristically_similar(a: RawEvent, b: RawEvent, params: Parameters = Parameters()) -> bool:
    return heuristic_score(a, b, params) >= params.heuristic_similarity_threshold


def passes_prefilter(a: RawEvent, b: RawEvent, params: Parameters = Parameters()) -> bool:
    """
    Cheap gates that must all hold before any classification call:
    same category, proximate location, proximate time.
    """
    if a.category != b.category:
        return False
    if not locations_proximate(a.location, b.location, params.proximity_radius_km):
        return False
    return timestamps_proximate(a.timestamp, b.timestamp, params.time_window_hours)


def build_event_context(event: RawEvent) -> str:
    """'<title> <description> in <area>' with missing parts omitted."""
    parts = []
    if event.title:
        parts.append(event.title)
    if event.description:
        parts.append(event.description)
    if event.area:
        parts.append(f"in {event.area}")
    return " ".join(parts).strip()
