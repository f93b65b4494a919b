"""
Pytest configuration for pulse tests.

Provides a scriptable in-process classification gateway and an event
factory; no network or storage is touched by the core tests.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from pulse.gateway import ClassificationResult, SummaryResult
from pulse.types import (
    CanonicalEvent,
    AggregationMethod,
    EventCategory,
    EventSeverity,
    Location,
    Parameters,
    RawEvent,
)


def pytest_configure(config):
    """Configure pytest with asyncio marker."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )


class ScriptedGateway:
    """
    Classification gateway driven by per-label responses.

    A response may be a ClassificationResult, an exception instance (raised),
    or a callable taking the prompt text and returning either of those.
    Unscripted labels answer with a failed result.
    """

    def __init__(self):
        self.responses: Dict[str, Any] = {}
        self.summary: Any = SummaryResult.failure("no summary scripted")
        self.calls: List[tuple] = []
        self.summary_calls: List[tuple] = []

    def respond(self, task_label: str, response: Any) -> 'ScriptedGateway':
        self.responses[task_label] = response
        return self

    def labels(self) -> List[str]:
        return [label for label, _, _ in self.calls]

    async def classify(self, text, task_label, *, timeout, image_url=None):
        self.calls.append((task_label, text, image_url))
        response = self.responses.get(task_label, ClassificationResult.failure("unscripted"))
        if callable(response):
            response = response(text)
        if isinstance(response, BaseException):
            raise response
        return response

    async def summarize(self, events, context, *, timeout):
        self.summary_calls.append((list(events), context))
        response = self.summary
        if callable(response):
            response = response(context)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def params() -> Parameters:
    return Parameters()


@pytest.fixture
def make_event():
    """Factory for RawEvents with sensible Koramangala traffic defaults."""
    counter = {'n': 0}

    def _make(
        title: str = "Heavy traffic jam on 80 Feet Road",
        description: Optional[str] = "Vehicles backed up near Sony signal",
        category: Optional[EventCategory] = EventCategory.TRAFFIC,
        severity: Optional[EventSeverity] = EventSeverity.MODERATE,
        timestamp: Optional[datetime] = datetime(2025, 7, 20, 8, 0),
        area: Optional[str] = "Koramangala",
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        keywords=("traffic", "jam"),
        confidence: Optional[float] = 0.8,
        id: Optional[str] = None,
        **kwargs
    ) -> RawEvent:
        counter['n'] += 1
        location = None
        if area is not None or latitude is not None:
            location = Location(latitude=latitude, longitude=longitude, area=area)
        return RawEvent(
            id=id or f"rw_test{counter['n']:04d}",
            title=title,
            description=description,
            category=category,
            severity=severity,
            timestamp=timestamp,
            location=location,
            keywords=tuple(keywords),
            confidence=confidence,
            **kwargs
        )

    return _make


@pytest.fixture
def make_canonical():
    """Factory for CanonicalEvents as they leave synthesis."""

    def _make(**overrides) -> CanonicalEvent:
        fields = dict(
            id="ev_canon001",
            title="Waterlogging at Silk Board junction",
            description="Knee-deep water after overnight rain",
            category=EventCategory.WEATHER,
            severity=EventSeverity.HIGH,
            timestamp=datetime(2025, 7, 20, 7, 30),
            location=Location(area="BTM Layout", address="Silk Board junction"),
            keywords=("rain", "waterlogging"),
            confidence=0.7,
            source_event_ids=("rw_a", "rw_b"),
            aggregation_method=AggregationMethod.AI_SYNTHESIS,
        )
        fields.update(overrides)
        return CanonicalEvent(**fields)

    return _make
