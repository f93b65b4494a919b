"""
Event Pipeline
==============

Batch entry point wiring the stages together:

    raw batch -> group -> cluster (per bucket) -> synthesize (per cluster)
              -> enrich + persist (per canonical event) -> PipelineResult

Buckets, clusters and canonical events fan out with asyncio.gather in
chunks of `chunk_size`. An unexpected failure while enriching or
persisting one event is logged and drops only that event.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from .clustering import ClusteringStage
from .enrichment import EnrichmentStage
from .gateway import ClassificationGateway
from .grouping import group_events
from .persistence import EventStore, PersistenceStage
from .synthesis import SynthesisStage
from .types import (
    CanonicalEvent,
    Cluster,
    EnrichedEvent,
    Parameters,
    PersistenceOutcome,
    RawEvent,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


@dataclass
class PipelineSummary:
    input_count: int = 0
    output_count: int = 0
    cluster_count: int = 0
    bucket_count: int = 0
    failed_items: int = 0
    document_failures: int = 0
    warehouse_failures: int = 0
    duration_seconds: float = 0.0

    @property
    def dedup_ratio(self) -> float:
        """(in - out) / in, 0 for an empty batch."""
        if self.input_count == 0:
            return 0.0
        return (self.input_count - self.output_count) / self.input_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            'input_count': self.input_count,
            'output_count': self.output_count,
            'dedup_ratio': round(self.dedup_ratio, 4),
            'cluster_count': self.cluster_count,
            'bucket_count': self.bucket_count,
            'failed_items': self.failed_items,
            'document_failures': self.document_failures,
            'warehouse_failures': self.warehouse_failures,
            'duration_seconds': round(self.duration_seconds, 3),
        }


@dataclass
class PipelineResult:
    enriched_events: List[EnrichedEvent] = field(default_factory=list)
    outcomes: List[PersistenceOutcome] = field(default_factory=list)
    summary: PipelineSummary = field(default_factory=PipelineSummary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary.to_dict(),
            'outcomes': [o.to_dict() for o in self.outcomes],
        }


def chunked(items: List[T], size: int) -> Iterable[List[T]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


async def gather_chunked(
    items: List[T],
    func: Callable[[T], Awaitable[R]],
    chunk_size: int
) -> List[R]:
    """Order-preserving fan-out, at most `chunk_size` coroutines in flight."""
    results: List[R] = []
    for chunk in chunked(items, max(1, chunk_size)):
        results.extend(await asyncio.gather(*[func(item) for item in chunk]))
    return results


class EventPipeline:
    """
    Dedup, enrich and persist one batch of raw city events.

    Usage:
        pipeline = EventPipeline(gateway, document_repo, warehouse_repo, params)
        result = await pipeline.process(raw_events)
        print(result.summary.dedup_ratio)
    """

    def __init__(
        self,
        gateway: ClassificationGateway,
        document_store: EventStore,
        warehouse_store: EventStore,
        params: Parameters = Parameters()
    ):
        self.params = params
        self.clustering = ClusteringStage(gateway, params)
        self.synthesis = SynthesisStage(gateway, params)
        self.enrichment = EnrichmentStage(gateway, params)
        self.persistence = PersistenceStage(document_store, warehouse_store, params)

        # Lifetime counters
        self.batches_processed = 0
        self.events_in = 0
        self.events_out = 0
        self.clusters_formed = 0
        self.failed_items = 0
        self.document_failures = 0
        self.warehouse_failures = 0

    async def process(self, raw_events: List[RawEvent]) -> PipelineResult:
        started = time.monotonic()
        summary = PipelineSummary(input_count=len(raw_events))

        if not raw_events:
            self.batches_processed += 1
            return PipelineResult(summary=summary)

        buckets = group_events(raw_events, self.params.bucket_window_hours)
        summary.bucket_count = len(buckets)

        clusters = await self.cluster_buckets(list(buckets.values()))
        summary.cluster_count = len(clusters)

        canonical = await gather_chunked(clusters, self._synthesize, self.params.chunk_size)

        finished = await gather_chunked(canonical, self._finish, self.params.chunk_size)

        result = PipelineResult(summary=summary)
        for item in finished:
            if item is None:
                summary.failed_items += 1
                continue
            enriched, outcome = item
            result.enriched_events.append(enriched)
            result.outcomes.append(outcome)
            if not outcome.document.success:
                summary.document_failures += 1
            if not outcome.warehouse.success:
                summary.warehouse_failures += 1

        summary.output_count = len(result.enriched_events)
        summary.duration_seconds = time.monotonic() - started
        self._record(summary)

        logger.info(
            f"📊 Batch done: {summary.input_count} in -> {summary.output_count} out "
            f"(dedup {summary.dedup_ratio:.1%}, {summary.cluster_count} clusters, "
            f"{summary.failed_items} failed, {summary.duration_seconds:.2f}s)"
        )
        return result

    async def cluster_buckets(self, buckets: List[List[RawEvent]]) -> List[Cluster]:
        """Buckets are independent, so they are clustered concurrently."""
        per_bucket = await gather_chunked(buckets, self._cluster_bucket, self.params.chunk_size)
        return [c for clusters in per_bucket for c in clusters]

    async def _cluster_bucket(self, bucket: List[RawEvent]) -> List[Cluster]:
        try:
            return await self.clustering.cluster(bucket)
        except Exception as e:
            logger.error(
                f"❌ Clustering failed for bucket of {len(bucket)}, keeping events apart: {e}",
                exc_info=True
            )
            return [Cluster(members=[event]) for event in bucket]

    async def _synthesize(self, cluster: Cluster) -> CanonicalEvent:
        try:
            return await self.synthesis.synthesize(cluster)
        except Exception as e:
            logger.error(
                f"❌ Synthesis failed for cluster of {cluster.size}, using manual aggregation: {e}",
                exc_info=True
            )
            return self.synthesis.manual_fallback(cluster.members)

    async def _finish(self, event: CanonicalEvent) -> Optional[Tuple[EnrichedEvent, PersistenceOutcome]]:
        try:
            enriched = await self.enrichment.enrich(event)
            outcome = await self.persistence.persist(enriched)
            return enriched, outcome
        except Exception as e:
            logger.error(f"❌ Failed to finish event {event.id}: {e}", exc_info=True)
            return None

    def _record(self, summary: PipelineSummary):
        self.batches_processed += 1
        self.events_in += summary.input_count
        self.events_out += summary.output_count
        self.clusters_formed += summary.cluster_count
        self.failed_items += summary.failed_items
        self.document_failures += summary.document_failures
        self.warehouse_failures += summary.warehouse_failures

    def get_stats(self) -> dict:
        """Lifetime statistics across all processed batches"""
        return {
            'batches_processed': self.batches_processed,
            'events_in': self.events_in,
            'events_out': self.events_out,
            'clusters_formed': self.clusters_formed,
            'dedup_ratio': (
                (self.events_in - self.events_out) / self.events_in if self.events_in else 0.0
            ),
            'failed_items': self.failed_items,
            'document_failures': self.document_failures,
            'warehouse_failures': self.warehouse_failures,
            'similarity': self.clustering.get_stats(),
        }
