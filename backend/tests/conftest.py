"""
Pytest configuration for adapter tests (OpenAI gateway, Redis and
PostgreSQL repositories, worker, settings).

External clients are replaced with unittest.mock doubles.
"""

from datetime import datetime

import pytest

from pulse.types import (
    AggregationMethod,
    CanonicalEvent,
    EnrichedEvent,
    EnrichmentMetadata,
    EventCategory,
    EventSeverity,
    EventSource,
    Location,
    Sentiment,
    SentimentType,
)


def pytest_configure(config):
    """Configure pytest with asyncio marker."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test."
    )


@pytest.fixture
def make_enriched():
    """Factory for EnrichedEvents ready to be stored."""

    def _make(**overrides) -> EnrichedEvent:
        fields = dict(
            id="ev_store001",
            title="Pothole cluster on Outer Ring Road",
            description="Several deep potholes near Marathahalli bridge",
            category=EventCategory.INFRASTRUCTURE,
            severity=EventSeverity.MODERATE,
            timestamp=datetime(2025, 7, 21, 10, 0),
            location=Location(
                latitude=12.9569,
                longitude=77.7011,
                address="Outer Ring Road",
                area="Marathahalli",
                pincode="560037",
            ),
            keywords=("pothole", "road"),
            confidence=0.82,
            source_event_ids=("rw_p1", "rw_p2"),
            aggregation_method=AggregationMethod.AI_SYNTHESIS,
            ai_summary="Potholes slowing ORR traffic",
            source=EventSource.SYSTEM_GENERATED,
            sentiment=Sentiment(type=SentimentType.NEGATIVE, score=-0.5, confidence=0.7),
        )
        fields.update(overrides)
        return EnrichedEvent(
            event=CanonicalEvent(**fields),
            enrichment=EnrichmentMetadata(
                enriched_at=datetime(2025, 7, 21, 10, 5),
                enrichment_method="pulse_enrichment_v2",
            ),
            enhanced_field_count=1,
        )

    return _make
