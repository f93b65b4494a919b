"""
Enrichment Stage
================

Fills in what a canonical event is missing with independent classification
calls, run concurrently, then merged under one rule:

    a field is set only if its call succeeded with a non-null value AND the
    field was null on input. Known values are never overwritten.

Dimensions (each requested only when needed, insights always):

    content    category / title / keywords missing   CONTENT_ANALYSIS
    sentiment  sentiment missing                     SENTIMENT_ANALYSIS
    location   no location, or no area and address   LOCATION_ENHANCEMENT
    severity   severity missing                      SEVERITY_ANALYSIS
    media      media URL present                     IMAGE_ANALYSIS
    insights   always                                INSIGHTS_GENERATION

A failed sentiment call resolves to the neutral default, any other failed
dimension stays unresolved. Both are listed in `failed_dimensions`.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from utils.datetime_utils import utcnow

from .gateway import ClassificationGateway, ClassificationResult, TaskLabel, guarded_classify
from .types import (
    CanonicalEvent,
    EnrichedEvent,
    EnrichmentMetadata,
    EventCategory,
    EventSeverity,
    Location,
    Parameters,
    Sentiment,
    SentimentType,
)

logger = logging.getLogger(__name__)

# Bump whenever merge rules or prompts change
ENRICHMENT_METHOD_VERSION = "pulse_enrichment_v2"

CONTENT = "content"
SENTIMENT = "sentiment"
LOCATION = "location"
SEVERITY = "severity"
MEDIA = "media"
INSIGHTS = "insights"

_LABELS = {
    CONTENT: TaskLabel.CONTENT_ANALYSIS,
    SENTIMENT: TaskLabel.SENTIMENT_ANALYSIS,
    LOCATION: TaskLabel.LOCATION_ENHANCEMENT,
    SEVERITY: TaskLabel.SEVERITY_ANALYSIS,
    MEDIA: TaskLabel.IMAGE_ANALYSIS,
    INSIGHTS: TaskLabel.INSIGHTS_GENERATION,
}

_LOCATION_FIELDS = ('latitude', 'longitude', 'address', 'area', 'pincode', 'landmark')


@dataclass(frozen=True)
class DimensionRequest:
    dimension: str
    text: str
    image_url: Optional[str] = None


# =============================================================================
# PREDICATES
# =============================================================================

def needs_content_analysis(event: CanonicalEvent) -> bool:
    return event.category is None or not event.title or not event.keywords


def needs_sentiment_analysis(event: CanonicalEvent) -> bool:
    return event.sentiment is None


def needs_location_analysis(event: CanonicalEvent) -> bool:
    loc = event.location
    return loc is None or (loc.area is None and loc.address is None)


def needs_severity_analysis(event: CanonicalEvent) -> bool:
    return event.severity is None


# =============================================================================
# CONTEXT BUILDERS
# =============================================================================

def build_analysis_text(event: CanonicalEvent) -> str:
    parts = [event.title, event.description, event.content]
    return " ".join(p.strip() for p in parts if p and p.strip())


def build_location_context(event: CanonicalEvent) -> str:
    area = event.area or "Unknown"
    return f"{build_analysis_text(event)} Current area: {area}".strip()


def build_severity_context(event: CanonicalEvent) -> str:
    category = event.category.value if event.category else "UNKNOWN"
    return f"{build_analysis_text(event)} Category: {category}".strip()


def build_image_context(event: CanonicalEvent) -> str:
    category = event.category.value if event.category else "UNKNOWN"
    return f"Event: {event.title}, Category: {category}, Location: {event.area or 'Unknown'}"


def build_insight_context(event: CanonicalEvent) -> str:
    category = event.category.value if event.category else "UNKNOWN"
    return (
        f"Generate additional insights for this city event: {event.title} "
        f"in {event.area or 'Unknown'}, category: {category}"
    )


# =============================================================================
# PARSERS
# =============================================================================

def parse_severity(value: Any) -> EventSeverity:
    """Case-insensitive; anything unrecognised is LOW."""
    severity = EventSeverity.parse(value)
    if severity is None:
        logger.warning(f"Unrecognised severity {value!r}, defaulting to LOW")
        return EventSeverity.LOW
    return severity


def parse_category(value: Any) -> Optional[EventCategory]:
    category = EventCategory.parse(value)
    if category is None and value is not None:
        logger.warning(f"Invalid category from analysis: {value!r}")
    return category


def parse_sentiment(result: ClassificationResult) -> Optional[Sentiment]:
    raw = result.get('sentiment', result.get('type'))
    if isinstance(raw, dict):
        payload = raw
        raw = raw.get('type')
    else:
        payload = result.fields

    sentiment_type = SentimentType.parse(raw)
    if sentiment_type is None:
        return None

    try:
        score = float(payload.get('score', 0.0))
    except (TypeError, ValueError):
        score = 0.0
    confidence = result.confidence if result.confidence is not None else 0.5

    return Sentiment(
        type=sentiment_type,
        score=max(-1.0, min(1.0, score)),
        confidence=confidence
    )


def parse_keywords(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.split(',')
    if not isinstance(value, (list, tuple)):
        return []
    return [str(k).strip() for k in value if k is not None and str(k).strip()]


# =============================================================================
# STAGE
# =============================================================================

class EnrichmentStage:
    """
    Resolves missing fields of canonical events.

    Usage:
        stage = EnrichmentStage(gateway, params)
        enriched = await stage.enrich(event)
    """

    def __init__(self, gateway: ClassificationGateway, params: Parameters = Parameters()):
        self.gateway = gateway
        self.params = params

    def plan(self, event: CanonicalEvent, media_url: Optional[str] = None) -> List[DimensionRequest]:
        """Which calls this event needs, in a fixed order."""
        requests = []
        if needs_content_analysis(event):
            requests.append(DimensionRequest(CONTENT, build_analysis_text(event)))
        if needs_sentiment_analysis(event):
            requests.append(DimensionRequest(SENTIMENT, build_analysis_text(event)))
        if needs_location_analysis(event):
            requests.append(DimensionRequest(LOCATION, build_location_context(event)))
        if needs_severity_analysis(event):
            requests.append(DimensionRequest(SEVERITY, build_severity_context(event)))
        if media_url:
            requests.append(DimensionRequest(MEDIA, build_image_context(event), image_url=media_url))
        requests.append(DimensionRequest(INSIGHTS, build_insight_context(event)))
        return requests

    async def enrich(self, event: CanonicalEvent, media_url: Optional[str] = None) -> EnrichedEvent:
        media_url = media_url or event.media_url
        requests = self.plan(event, media_url)

        results = await asyncio.gather(*[
            guarded_classify(
                self.gateway,
                req.text,
                _LABELS[req.dimension],
                timeout=self.params.classification_timeout,
                image_url=req.image_url
            )
            for req in requests
        ])
        outcomes = {req.dimension: result for req, result in zip(requests, results)}

        enriched, metadata = self.merge(event, outcomes, media_url)
        count = count_enhanced_fields(event, enriched)

        if metadata.failed_dimensions:
            logger.warning(
                f"Enrichment of {event.id} left unresolved: {', '.join(metadata.failed_dimensions)}"
            )
        logger.debug(
            f"✨ Enriched {event.id}: {len(requests)} calls, "
            f"{len(metadata.ai_processed_fields)} AI fields, {count} new"
        )

        return EnrichedEvent(event=enriched, enrichment=metadata, enhanced_field_count=count)

    def merge(
        self,
        event: CanonicalEvent,
        outcomes: Dict[str, ClassificationResult],
        media_url: Optional[str] = None
    ):
        """Apply successful results to the null fields of `event`."""
        updates: Dict[str, Any] = {}
        metadata = EnrichmentMetadata(
            enriched_at=utcnow(),
            enrichment_method=ENRICHMENT_METHOD_VERSION,
            analysis_count=len(outcomes),
        )

        for dimension, result in outcomes.items():
            metadata.ai_powered[dimension] = result.ok
            if result.ok:
                metadata.ai_processed_fields.append(dimension)
            else:
                metadata.failed_dimensions.append(dimension)

        content = outcomes.get(CONTENT)
        if content is not None and content.ok:
            self._apply_content(event, content, updates)

        if SENTIMENT in outcomes:
            sentiment = parse_sentiment(outcomes[SENTIMENT]) if outcomes[SENTIMENT].ok else None
            if sentiment is None:
                if outcomes[SENTIMENT].ok:
                    # Answered, but unusable
                    metadata.ai_powered[SENTIMENT] = False
                    metadata.ai_processed_fields.remove(SENTIMENT)
                    metadata.failed_dimensions.append(SENTIMENT)
                sentiment = Sentiment.neutral()
            updates['sentiment'] = sentiment

        location = outcomes.get(LOCATION)
        if location is not None and location.ok:
            current = updates.get('location', event.location)
            merged = merge_location(current, location.fields)
            if merged != current:
                updates['location'] = merged

        severity = outcomes.get(SEVERITY)
        if severity is not None and severity.ok and event.severity is None:
            updates['severity'] = parse_severity(severity.get('severity'))

        media = outcomes.get(MEDIA)
        if media is not None and media.ok:
            metadata.media_analysis = dict(media.fields)
            metadata.media_analysis['media_type'] = 'image'
            description = media.get('description')
            if description and event.media_description is None:
                updates['media_description'] = str(description)
        if media_url and event.media_url is None:
            updates['media_url'] = media_url

        insights = outcomes.get(INSIGHTS)
        if insights is not None and insights.ok:
            metadata.ai_insights = {
                'ai_keywords': parse_keywords(insights.get('keywords')),
                'ai_summary': insights.get('summary', ""),
                'ai_confidence': insights.effective_confidence,
            }

        return dataclasses.replace(event, **updates), metadata

    def _apply_content(self, event: CanonicalEvent, result: ClassificationResult, updates: Dict[str, Any]):
        if event.category is None and result.get('category') is not None:
            category = parse_category(result.get('category'))
            if category is not None:
                updates['category'] = category

        title = result.get('title')
        if not event.title and title:
            updates['title'] = str(title).strip()

        if event.description is None and result.get('summary'):
            updates['description'] = str(result.get('summary'))

        if event.ai_summary is None and result.get('summary'):
            updates['ai_summary'] = str(result.get('summary'))

        if not event.keywords:
            keywords = parse_keywords(result.get('keywords'))[:self.params.max_keywords]
            if keywords:
                updates['keywords'] = tuple(keywords)

        if event.confidence is None and result.confidence is not None:
            updates['confidence'] = result.confidence

        if event.location is None and isinstance(result.get('location'), dict):
            location = merge_location(None, result.get('location'))
            if location is not None:
                updates.setdefault('location', location)


def merge_location(current: Optional[Location], payload: Dict[str, Any]) -> Optional[Location]:
    """Fill the null parts of `current` from a model payload."""
    if isinstance(payload.get('location'), dict):
        payload = payload['location']

    candidate = Location.from_dict(payload)
    if candidate is None:
        return current
    if current is None:
        if all(getattr(candidate, name) is None for name in _LOCATION_FIELDS):
            return None
        return candidate

    filled = {
        name: getattr(candidate, name)
        for name in _LOCATION_FIELDS
        if getattr(current, name) is None and getattr(candidate, name) is not None
    }
    return dataclasses.replace(current, **filled) if filled else current


def count_enhanced_fields(original: CanonicalEvent, enriched: CanonicalEvent) -> int:
    """Category, sentiment, severity and keywords that went from unset to set."""
    count = 0
    if original.category is None and enriched.category is not None:
        count += 1
    if original.sentiment is None and enriched.sentiment is not None:
        count += 1
    if original.severity is None and enriched.severity is not None:
        count += 1
    if not original.keywords and enriched.keywords:
        count += 1
    return count
