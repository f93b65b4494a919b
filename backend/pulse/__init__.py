"""
Pulse: City Event Dedup / Enrichment Pipeline
=============================================

Collapses independently-sourced city event reports into canonical events,
fills in missing structure with a classification service and writes the
result to a TTL-bound document store and an append-only warehouse.

ARCHITECTURE:
    RawEvents → group_events      → buckets
              → ClusteringStage   → Clusters
              → SynthesisStage    → CanonicalEvents
              → EnrichmentStage   → EnrichedEvents
              → PersistenceStage  → PersistenceOutcomes

PUBLIC API:
- EventPipeline: batch entry point (process, get_stats)
- RawEvent, CanonicalEvent, EnrichedEvent, PersistenceOutcome: core types
- Parameters: every tunable threshold in one place
- ClassificationGateway, EventStore: the two external contracts

Stages are usable on their own; heuristics and grouping are pure functions.
"""

# =============================================================================
# TYPES
# =============================================================================

from .types import (
    EventCategory,
    EventSeverity,
    EventSource,
    SentimentType,
    AggregationMethod,
    Parameters,
    Location,
    Sentiment,
    RawEvent,
    Cluster,
    CanonicalEvent,
    EnrichmentMetadata,
    EnrichedEvent,
    StoreWriteResult,
    PersistenceOutcome,
)

# =============================================================================
# CONTRACTS
# =============================================================================

from .gateway import (
    TaskLabel,
    ClassificationError,
    ClassificationResult,
    SummaryResult,
    ClassificationGateway,
    UnavailableGateway,
    guarded_classify,
    guarded_summarize,
)
from .persistence import (
    EventStore,
    InMemoryDocumentStore,
    InMemoryWarehouseStore,
)

# =============================================================================
# STAGES
# =============================================================================

from .grouping import group_events, bucket_key
from .clustering import ClusteringStage, SimilarityDecision
from .synthesis import SynthesisStage
from .enrichment import EnrichmentStage, ENRICHMENT_METHOD_VERSION
from .persistence import PersistenceStage
from .pipeline import EventPipeline, PipelineResult, PipelineSummary

__all__ = [
    # Types
    'EventCategory',
    'EventSeverity',
    'EventSource',
    'SentimentType',
    'AggregationMethod',
    'Parameters',
    'Location',
    'Sentiment',
    'RawEvent',
    'Cluster',
    'CanonicalEvent',
    'EnrichmentMetadata',
    'EnrichedEvent',
    'StoreWriteResult',
    'PersistenceOutcome',

    # Contracts
    'TaskLabel',
    'ClassificationError',
    'ClassificationResult',
    'SummaryResult',
    'ClassificationGateway',
    'UnavailableGateway',
    'guarded_classify',
    'guarded_summarize',
    'EventStore',
    'InMemoryDocumentStore',
    'InMemoryWarehouseStore',

    # Stages
    'group_events',
    'bucket_key',
    'ClusteringStage',
    'SimilarityDecision',
    'SynthesisStage',
    'EnrichmentStage',
    'ENRICHMENT_METHOD_VERSION',
    'PersistenceStage',
    'EventPipeline',
    'PipelineResult',
    'PipelineSummary',
]
