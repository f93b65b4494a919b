"""
Synthesis Stage
===============

Collapses each cluster into one CanonicalEvent.

- Singleton: passthrough, identifier and fields reused as-is.
- Two or more members: one summarization call. Success gives an
  `ai_synthesis` event whose description is the model text; failure gives a
  deterministic `manual_fallback` summary.

Aggregates are computed the same way on both paths:
  severity   = max over members (absent counts as LOW)
  timestamp  = most recent known timestamp
  location   = first non-null member location
  keywords   = ordered union, deduplicated, capped
  confidence = mean of member confidences (0.5 where absent)
"""

import logging
from typing import List, Optional, Tuple

from utils.datetime_utils import utcnow
from utils.id_generator import generate_event_id

from .gateway import ClassificationGateway, guarded_summarize
from .types import (
    AggregationMethod,
    CanonicalEvent,
    Cluster,
    EventSeverity,
    EventSource,
    Location,
    Parameters,
    RawEvent,
)

logger = logging.getLogger(__name__)

UNKNOWN_AREA_LABEL = "Unknown Area"
DEFAULT_MEMBER_CONFIDENCE = 0.5


# =============================================================================
# AGGREGATES
# =============================================================================

def highest_severity(members: List[RawEvent]) -> EventSeverity:
    return max(
        (m.severity or EventSeverity.LOW for m in members),
        key=lambda s: s.rank
    )


def latest_timestamp(members: List[RawEvent]):
    known = [m.timestamp for m in members if m.timestamp is not None]
    return max(known) if known else None


def best_location(members: List[RawEvent]) -> Optional[Location]:
    return next((m.location for m in members if m.location is not None), None)


def combine_keywords(members: List[RawEvent], limit: int = 20) -> Tuple[str, ...]:
    seen = []
    for m in members:
        for kw in m.keywords:
            if kw not in seen:
                seen.append(kw)
                if len(seen) >= limit:
                    return tuple(seen)
    return tuple(seen)


def aggregate_confidence(members: List[RawEvent]) -> float:
    values = [
        m.confidence if m.confidence is not None else DEFAULT_MEMBER_CONFIDENCE
        for m in members
    ]
    return sum(values) / len(values) if values else DEFAULT_MEMBER_CONFIDENCE


def cluster_area(members: List[RawEvent]) -> str:
    return next((m.area for m in members if m.area), UNKNOWN_AREA_LABEL)


def category_label(members: List[RawEvent]) -> str:
    category = members[0].category
    return category.value if category else "UNKNOWN"


def extract_title(synthesis: str, fallback: str) -> str:
    """First line strictly between 10 and 100 characters, else fallback."""
    for line in synthesis.split("\n"):
        if 10 < len(line) < 100:
            return line.strip()
    return fallback


def manual_summary(members: List[RawEvent]) -> str:
    return (
        f"Multiple {category_label(members)} reports in {cluster_area(members)} area. "
        f"{len(members)} similar events aggregated."
    )


# =============================================================================
# STAGE
# =============================================================================

class SynthesisStage:

    def __init__(self, gateway: ClassificationGateway, params: Parameters = Parameters()):
        self.gateway = gateway
        self.params = params

    async def synthesize(self, cluster: Cluster) -> CanonicalEvent:
        members = cluster.members
        if len(members) == 1:
            return self.passthrough(members[0])

        context = (
            f"Aggregating {len(members)} similar events from {cluster_area(members)} "
            f"area about {category_label(members)} category"
        )
        result = await guarded_summarize(
            self.gateway, list(members), context, timeout=self.params.summary_timeout
        )

        if result.ok:
            text = result.text.strip()
            logger.debug(f"🔬 Synthesized {len(members)} events ({len(text)} chars)")
            return self._build(
                members,
                title=extract_title(text, members[0].title),
                description=text,
                content=text,
                ai_summary=text,
                method=AggregationMethod.AI_SYNTHESIS,
                extra_metadata={'ai_synthesis_length': len(text)},
            )

        logger.warning(
            f"AI synthesis failed for cluster of {len(members)}, using manual aggregation: "
            f"{result.error}"
        )
        return self.manual_fallback(members)

    def manual_fallback(self, members: List[RawEvent]) -> CanonicalEvent:
        """Deterministic template aggregation, no external calls."""
        if len(members) == 1:
            return self.passthrough(members[0])
        return self._build(
            members,
            title=f"Multiple {category_label(members)} reports",
            description=manual_summary(members),
            content=None,
            ai_summary=f"Manual aggregation of {len(members)} events",
            method=AggregationMethod.MANUAL_FALLBACK,
        )

    @staticmethod
    def passthrough(event: RawEvent) -> CanonicalEvent:
        """Singleton clusters keep every field of their only member."""
        return CanonicalEvent(
            id=event.id,
            title=event.title,
            description=event.description,
            content=event.content,
            category=event.category,
            severity=event.severity,
            timestamp=event.timestamp,
            location=event.location,
            keywords=tuple(event.keywords),
            confidence=event.confidence,
            source=event.source,
            media_url=event.media_url,
            source_event_ids=(event.id,),
            aggregation_method=AggregationMethod.PASSTHROUGH,
            metadata=dict(event.metadata),
        )

    def _build(
        self,
        members: List[RawEvent],
        title: str,
        description: str,
        content: Optional[str],
        ai_summary: str,
        method: AggregationMethod,
        extra_metadata: Optional[dict] = None
    ) -> CanonicalEvent:
        metadata = {
            'aggregated_event_count': len(members),
            'source_event_ids': [m.id for m in members],
            'aggregation_timestamp': utcnow().isoformat(),
            'aggregation_method': method.value,
            'similarity_threshold': self.params.similarity_threshold,
        }
        metadata.update(extra_metadata or {})

        return CanonicalEvent(
            id=generate_event_id(),
            title=title,
            description=description,
            content=content,
            category=members[0].category,
            severity=highest_severity(members),
            timestamp=latest_timestamp(members),
            location=best_location(members),
            keywords=combine_keywords(members, self.params.max_keywords),
            confidence=aggregate_confidence(members),
            source=EventSource.SYSTEM_GENERATED,
            media_url=next((m.media_url for m in members if m.media_url), None),
            source_event_ids=tuple(m.id for m in members),
            aggregation_method=method,
            ai_summary=ai_summary,
            metadata=metadata,
        )
