"""
Classification Gateway Contract
===============================

The pipeline consumes one external capability: a text/vision model that
answers a task-labelled question with a structured result and a confidence.

Calling convention:
- classify(text, task_label, timeout=..., image_url=None) -> ClassificationResult
- summarize(events, context, timeout=...) -> SummaryResult

Fallback contract:
- A gateway reports failure inside the result (`error`), it does not raise.
- guarded_classify / guarded_summarize additionally bound every call with a
  deadline and convert anything a gateway does raise into a failed result,
  so stages only ever branch on `result.ok`.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .types import RawEvent

logger = logging.getLogger(__name__)


class TaskLabel:
    """Task-label vocabulary understood by the classification service."""
    SIMILARITY_CHECK = "SIMILARITY_CHECK"
    CONTENT_ANALYSIS = "CONTENT_ANALYSIS"
    SENTIMENT_ANALYSIS = "SENTIMENT_ANALYSIS"
    LOCATION_ENHANCEMENT = "LOCATION_ENHANCEMENT"
    SEVERITY_ANALYSIS = "SEVERITY_ANALYSIS"
    IMAGE_ANALYSIS = "IMAGE_ANALYSIS"
    INSIGHTS_GENERATION = "INSIGHTS_GENERATION"

    ALL = (
        SIMILARITY_CHECK,
        CONTENT_ANALYSIS,
        SENTIMENT_ANALYSIS,
        LOCATION_ENHANCEMENT,
        SEVERITY_ANALYSIS,
        IMAGE_ANALYSIS,
        INSIGHTS_GENERATION,
    )


class ClassificationError(Exception):
    """Raised inside gateways for malformed or unusable model output."""


@dataclass(frozen=True)
class ClassificationResult:
    fields: Dict[str, Any] = field(default_factory=dict)
    confidence: Optional[float] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def effective_confidence(self) -> float:
        """Missing confidence is low confidence, never 1.0."""
        return self.confidence if self.confidence is not None else 0.0

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    @classmethod
    def failure(cls, error: Any) -> 'ClassificationResult':
        return cls(error=str(error) or type(error).__name__)


@dataclass(frozen=True)
class SummaryResult:
    text: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.text.strip())

    @classmethod
    def failure(cls, error: Any) -> 'SummaryResult':
        return cls(error=str(error) or type(error).__name__)


class ClassificationGateway(Protocol):
    async def classify(
        self,
        text: str,
        task_label: str,
        *,
        timeout: float,
        image_url: Optional[str] = None
    ) -> ClassificationResult:
        ...

    async def summarize(
        self,
        events: Sequence[RawEvent],
        context: str,
        *,
        timeout: float
    ) -> SummaryResult:
        ...


async def guarded_classify(
    gateway: ClassificationGateway,
    text: str,
    task_label: str,
    timeout: float,
    image_url: Optional[str] = None
) -> ClassificationResult:
    """Never raises; a timeout is just another failed result."""
    try:
        result = await asyncio.wait_for(
            gateway.classify(text, task_label, timeout=timeout, image_url=image_url),
            timeout=timeout
        )
    except asyncio.TimeoutError:
        logger.warning(f"⏱️ {task_label} timed out after {timeout:.1f}s")
        return ClassificationResult.failure(f"timeout after {timeout:.1f}s")
    except Exception as e:
        logger.warning(f"{task_label} call failed: {e}")
        return ClassificationResult.failure(e)

    if not isinstance(result, ClassificationResult):
        return ClassificationResult.failure(f"malformed result: {type(result).__name__}")
    if result.ok:
        problem = _malformed_classification(result)
        if problem:
            logger.warning(f"{task_label} returned a malformed result: {problem}")
            return ClassificationResult.failure(problem)
    return result


async def guarded_summarize(
    gateway: ClassificationGateway,
    events: List[RawEvent],
    context: str,
    timeout: float
) -> SummaryResult:
    try:
        result = await asyncio.wait_for(
            gateway.summarize(events, context, timeout=timeout),
            timeout=timeout
        )
    except asyncio.TimeoutError:
        logger.warning(f"⏱️ Summarization timed out after {timeout:.1f}s")
        return SummaryResult.failure(f"timeout after {timeout:.1f}s")
    except Exception as e:
        logger.warning(f"Summarization call failed: {e}")
        return SummaryResult.failure(e)

    if not isinstance(result, SummaryResult):
        return SummaryResult.failure(f"malformed result: {type(result).__name__}")
    if result.error is None and not isinstance(result.text, str):
        logger.warning(f"Summarization returned non-text summary: {type(result.text).__name__}")
        return SummaryResult.failure(f"malformed summary text: {type(result.text).__name__}")
    return result


def _malformed_classification(result: ClassificationResult) -> Optional[str]:
    """Why a successful-looking result cannot be used, or None."""
    if not isinstance(result.fields, dict):
        return f"fields must be an object, got {type(result.fields).__name__}"
    confidence = result.confidence
    if confidence is None:
        return None
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return f"non-numeric confidence: {confidence!r}"
    if math.isnan(confidence):
        return "confidence is NaN"
    return None


class UnavailableGateway:
    """
    Gateway that answers every call with a failure.

    Runs the pipeline on its deterministic fallbacks only (offline batches,
    local debugging).
    """

    def __init__(self, reason: str = "classification service disabled"):
        self.reason = reason

    async def classify(self, text, task_label, *, timeout, image_url=None) -> ClassificationResult:
        return ClassificationResult.failure(self.reason)

    async def summarize(self, events, context, *, timeout) -> SummaryResult:
        return SummaryResult.failure(self.reason)
