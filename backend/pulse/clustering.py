"""
Clustering Stage
================

Incremental representative-based single-link assignment inside one bucket.

For each event in arrival order:
  - compare against the representative (first member) of every existing
    cluster, in cluster-creation order
  - first similar representative wins, the event joins that cluster
  - no match starts a new singleton cluster

This is O(events x clusters) and order-dependent: a different arrival order
may legally produce a different clustering.

Similarity decision (representative vs candidate):
  1. category must match (no call otherwise)
  2. location proximity, 3. time proximity (heuristics.passes_prefilter)
  4. SIMILARITY_CHECK call, similar iff confidence >= similarity_threshold
  5. any call failure falls back to the lexical heuristic score
"""

import logging
from dataclasses import dataclass
from typing import List

from .gateway import ClassificationGateway, TaskLabel, guarded_classify
from .heuristics import build_event_context, heuristic_score, passes_prefilter
from .types import Cluster, Parameters, RawEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimilarityDecision:
    similar: bool
    method: str  # "prefilter", "ai", "heuristic"
    score: float = 0.0


class ClusteringStage:

    def __init__(self, gateway: ClassificationGateway, params: Parameters = Parameters()):
        self.gateway = gateway
        self.params = params

        self.ai_decisions = 0
        self.heuristic_decisions = 0
        self.prefilter_rejections = 0

    async def compare(self, representative: RawEvent, candidate: RawEvent) -> SimilarityDecision:
        if not passes_prefilter(representative, candidate, self.params):
            self.prefilter_rejections += 1
            return SimilarityDecision(similar=False, method="prefilter")

        prompt = (
            f"similarity check: {build_event_context(representative)} "
            f"vs {build_event_context(candidate)}"
        )
        result = await guarded_classify(
            self.gateway,
            prompt,
            TaskLabel.SIMILARITY_CHECK,
            timeout=self.params.classification_timeout
        )

        if result.ok:
            self.ai_decisions += 1
            score = result.effective_confidence
            return SimilarityDecision(
                similar=score >= self.params.similarity_threshold,
                method="ai",
                score=score
            )

        # Per-pair fallback, other pairs are unaffected
        self.heuristic_decisions += 1
        score = heuristic_score(representative, candidate, self.params)
        logger.debug(
            f"Similarity fallback for {representative.id} vs {candidate.id}: "
            f"score={score:.3f} ({result.error})"
        )
        return SimilarityDecision(
            similar=score >= self.params.heuristic_similarity_threshold,
            method="heuristic",
            score=score
        )

    async def is_similar(self, representative: RawEvent, candidate: RawEvent) -> bool:
        decision = await self.compare(representative, candidate)
        return decision.similar

    async def cluster(self, bucket: List[RawEvent]) -> List[Cluster]:
        """Sequential first-match-wins pass over one bucket."""
        clusters: List[Cluster] = []

        for event in bucket:
            placed = False
            for existing in clusters:
                if await self.is_similar(existing.representative, event):
                    existing.add(event)
                    placed = True
                    break

            if not placed:
                clusters.append(Cluster(members=[event]))

        if len(bucket) > 1:
            logger.debug(f"📂 Clustered {len(bucket)} events into {len(clusters)} clusters")

        return clusters

    def get_stats(self) -> dict:
        return {
            'ai_decisions': self.ai_decisions,
            'heuristic_decisions': self.heuristic_decisions,
            'prefilter_rejections': self.prefilter_rejections,
        }
