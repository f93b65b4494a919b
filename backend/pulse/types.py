"""
Core Types for the City Event Pipeline
======================================

Pure data structures with no I/O. All computation lives in the stage modules.

Lifecycle:
  RawEvent        Immutable input report (scraper, user submission, feed)
  Cluster         Transient group of raw events describing one occurrence
  CanonicalEvent  One record per cluster (synthesized or passthrough)
  EnrichedEvent   Canonical event with missing fields resolved + provenance
  PersistenceOutcome  Independent result of each store write
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Optional, Any, Tuple

from dateutil import parser as date_parser

from utils.datetime_utils import to_naive_utc
from utils.id_generator import generate_id

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================

class _LenientEnum(Enum):
    """Enum with case-insensitive parsing that never raises."""

    @classmethod
    def parse(cls, value: Any):
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper().replace(" ", "_").replace("-", "_")
        try:
            return cls[key]
        except KeyError:
            return None


class EventCategory(_LenientEnum):
    TRAFFIC = "TRAFFIC"
    CIVIC_ISSUE = "CIVIC_ISSUE"
    CULTURAL_EVENT = "CULTURAL_EVENT"
    EMERGENCY = "EMERGENCY"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    WEATHER = "WEATHER"
    PUBLIC_TRANSPORT = "PUBLIC_TRANSPORT"
    SAFETY = "SAFETY"
    ENVIRONMENT = "ENVIRONMENT"
    COMMUNITY = "COMMUNITY"
    UTILITY = "UTILITY"
    HEALTH = "HEALTH"
    EDUCATION = "EDUCATION"
    POLICE = "POLICE"
    FIRE = "FIRE"
    OTHER = "OTHER"


class EventSeverity(_LenientEnum):
    """Ordered severity: LOW < MODERATE < HIGH < CRITICAL."""
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [
    EventSeverity.LOW,
    EventSeverity.MODERATE,
    EventSeverity.HIGH,
    EventSeverity.CRITICAL,
]


class EventSource(_LenientEnum):
    TWITTER = "TWITTER"
    USER_REPORT = "USER_REPORT"
    NEWS = "NEWS"
    SERP = "SERP"
    SOCIAL_MEDIA = "SOCIAL_MEDIA"
    DATA_GOV_IN = "DATA_GOV_IN"
    OPENCITY = "OPENCITY"
    WEATHER_API = "WEATHER_API"
    TRAFFIC_API = "TRAFFIC_API"
    UTILITY_API = "UTILITY_API"
    HEALTH_API = "HEALTH_API"
    MANUAL = "MANUAL"
    SYSTEM_GENERATED = "SYSTEM_GENERATED"
    OTHER = "OTHER"


class SentimentType(_LenientEnum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"
    MIXED = "MIXED"


class AggregationMethod(Enum):
    """How a canonical event was produced from its cluster."""
    AI_SYNTHESIS = "ai_synthesis"
    MANUAL_FALLBACK = "manual_fallback"
    PASSTHROUGH = "passthrough"


# =============================================================================
# TUNABLE PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class Parameters:
    """
    Named thresholds for the pipeline.

    The AI similarity threshold and the lexical fallback threshold share a
    default but are tuned independently.
    """
    similarity_threshold: float = 0.75
    heuristic_similarity_threshold: float = 0.75
    proximity_radius_km: float = 2.0
    time_window_hours: float = 4.0
    bucket_window_hours: int = 2
    chunk_size: int = 25
    max_keywords: int = 20

    # Heuristic weights (title, description, keywords)
    title_weight: float = 0.4
    description_weight: float = 0.4
    keyword_weight: float = 0.2

    # Per-call deadlines (seconds)
    classification_timeout: float = 15.0
    summary_timeout: float = 30.0
    store_timeout: float = 10.0


# =============================================================================
# VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class Location:
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    area: Optional[str] = None
    pincode: Optional[str] = None
    landmark: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['Location']:
        if not isinstance(data, dict):
            return None
        return cls(
            latitude=_as_float(data.get('latitude')),
            longitude=_as_float(data.get('longitude')),
            address=_as_text(data.get('address')),
            area=_as_text(data.get('area')),
            pincode=_as_text(data.get('pincode')),
            landmark=_as_text(data.get('landmark')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Sentiment:
    type: SentimentType
    score: float = 0.0        # -1.0 .. 1.0
    confidence: float = 0.5

    @classmethod
    def neutral(cls) -> 'Sentiment':
        """Null-safe default used when sentiment could not be resolved."""
        return cls(type=SentimentType.NEUTRAL, score=0.0, confidence=0.5)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type.value, 'score': self.score, 'confidence': self.confidence}


# =============================================================================
# RAW INPUT
# =============================================================================

@dataclass(frozen=True)
class RawEvent:
    """
    One independently-sourced report. Never mutated by the pipeline.
    """
    id: str
    title: str
    description: Optional[str] = None
    content: Optional[str] = None
    category: Optional[EventCategory] = None
    severity: Optional[EventSeverity] = None
    timestamp: Optional[datetime] = None
    location: Optional[Location] = None
    keywords: Tuple[str, ...] = ()
    confidence: Optional[float] = None
    source: Optional[EventSource] = None
    media_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def area(self) -> Optional[str]:
        return self.location.area if self.location else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RawEvent':
        """
        Build a RawEvent from loosely-typed input.

        Malformed fields degrade to None instead of rejecting the event.
        """
        keywords = data.get('keywords') or []
        if isinstance(keywords, str):
            keywords = [k.strip() for k in keywords.split(',')]
        elif not isinstance(keywords, (list, tuple)):
            keywords = []

        metadata = data.get('metadata')
        if not isinstance(metadata, dict):
            metadata = {}

        return cls(
            id=str(data.get('id') or generate_id('raw_event')),
            title=_as_text(data.get('title')) or "",
            description=_as_text(data.get('description')),
            content=_as_text(data.get('content')),
            category=EventCategory.parse(data.get('category')),
            severity=EventSeverity.parse(data.get('severity')),
            timestamp=parse_timestamp(data.get('timestamp')),
            location=Location.from_dict(data.get('location')),
            keywords=tuple(str(k) for k in keywords if k and str(k).strip()),
            confidence=_as_float(data.get('confidence', data.get('confidence_score'))),
            source=EventSource.parse(data.get('source')),
            media_url=_as_text(data.get('media_url') or data.get('image_url')),
            metadata=dict(metadata),
        )


@dataclass
class Cluster:
    """
    Ordered, non-empty group of raw events believed to be one occurrence.

    The first member is the representative every candidate is compared to.
    """
    members: List[RawEvent]

    def __post_init__(self):
        if not self.members:
            raise ValueError("Cluster must contain at least one event")

    @property
    def representative(self) -> RawEvent:
        return self.members[0]

    @property
    def size(self) -> int:
        return len(self.members)

    def add(self, event: RawEvent) -> None:
        self.members.append(event)


# =============================================================================
# CANONICAL / ENRICHED
# =============================================================================

@dataclass(frozen=True)
class CanonicalEvent:
    id: str
    title: str
    description: Optional[str]
    category: Optional[EventCategory]
    severity: Optional[EventSeverity]
    timestamp: Optional[datetime]
    location: Optional[Location]
    keywords: Tuple[str, ...]
    confidence: Optional[float]
    source_event_ids: Tuple[str, ...]
    aggregation_method: AggregationMethod
    content: Optional[str] = None
    ai_summary: Optional[str] = None
    source: Optional[EventSource] = None
    media_url: Optional[str] = None

    # Resolved during enrichment
    sentiment: Optional[Sentiment] = None
    media_description: Optional[str] = None

    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def area(self) -> Optional[str]:
        return self.location.area if self.location else None


@dataclass
class EnrichmentMetadata:
    """Typed record of which enrichment calls ran and how they ended."""
    enriched_at: datetime
    enrichment_method: str
    analysis_count: int = 0
    ai_powered: Dict[str, bool] = field(default_factory=dict)
    ai_processed_fields: List[str] = field(default_factory=list)
    failed_dimensions: List[str] = field(default_factory=list)

    # Free-form model output
    ai_insights: Dict[str, Any] = field(default_factory=dict)
    media_analysis: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'enriched_at': self.enriched_at.isoformat(),
            'enrichment_method': self.enrichment_method,
            'analysis_count': self.analysis_count,
            'ai_powered': dict(self.ai_powered),
            'ai_processed_fields': list(self.ai_processed_fields),
            'failed_dimensions': list(self.failed_dimensions),
            'ai_insights': dict(self.ai_insights),
            'media_analysis': dict(self.media_analysis),
            'ai_powered_any': bool(self.ai_processed_fields),
        }


@dataclass(frozen=True)
class EnrichedEvent:
    event: CanonicalEvent
    enrichment: EnrichmentMetadata
    enhanced_field_count: int = 0

    @property
    def id(self) -> str:
        return self.event.id

    def to_dict(self) -> Dict[str, Any]:
        """Storage representation shared by both stores."""
        ev = self.event
        return {
            'id': ev.id,
            'title': ev.title,
            'description': ev.description,
            'content': ev.content,
            'category': ev.category.value if ev.category else None,
            'severity': ev.severity.value if ev.severity else None,
            'timestamp': ev.timestamp.isoformat() if ev.timestamp else None,
            'location': ev.location.to_dict() if ev.location else None,
            'keywords': list(ev.keywords),
            'confidence_score': ev.confidence,
            'source': ev.source.value if ev.source else None,
            'source_event_ids': list(ev.source_event_ids),
            'aggregation_method': ev.aggregation_method.value,
            'ai_summary': ev.ai_summary,
            'sentiment': ev.sentiment.to_dict() if ev.sentiment else None,
            'media_url': ev.media_url,
            'media_description': ev.media_description,
            'metadata': _jsonable(ev.metadata),
            'enrichment': self.enrichment.to_dict(),
        }


# =============================================================================
# PERSISTENCE
# =============================================================================

@dataclass(frozen=True)
class StoreWriteResult:
    store: str
    success: bool
    record_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PersistenceOutcome:
    """
    Per-event result. A failed store write is reported here, it never
    fails the event itself.
    """
    event_id: str
    document: StoreWriteResult
    warehouse: StoreWriteResult
    enriched: bool = True
    enhanced_field_count: int = 0

    @property
    def fully_persisted(self) -> bool:
        return self.document.success and self.warehouse.success

    @property
    def partially_persisted(self) -> bool:
        return self.document.success != self.warehouse.success

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_id': self.event_id,
            'enriched': self.enriched,
            'enhanced_field_count': self.enhanced_field_count,
            'document': self.document.to_dict(),
            'warehouse': self.warehouse.to_dict(),
        }


# =============================================================================
# HELPERS
# =============================================================================

def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO strings, epoch seconds or datetimes; None when unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        return to_naive_utc(date_parser.parse(str(value)))
    except (ValueError, OverflowError) as e:
        logger.warning(f"Unparseable timestamp {value!r}: {e}")
        return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value
