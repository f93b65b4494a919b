"""
Synthesis: passthrough idempotence, AI synthesis, manual fallback and
the cluster aggregates.
"""

from datetime import datetime

import pytest

from pulse.gateway import SummaryResult
from pulse.synthesis import SynthesisStage, extract_title
from pulse.types import (
    AggregationMethod,
    Cluster,
    EventCategory,
    EventSeverity,
    EventSource,
    Location,
    Parameters,
)
from utils.id_generator import get_id_type


class TestPassthrough:

    @pytest.mark.asyncio
    async def test_singleton_keeps_every_field(self, gateway, make_event):
        raw = make_event(
            severity=None,
            confidence=None,
            source=EventSource.TWITTER,
            media_url="https://img.example/1.jpg",
            metadata={'tweet_id': '123'},
        )
        event = await SynthesisStage(gateway).synthesize(Cluster(members=[raw]))

        assert event.id == raw.id
        assert event.title == raw.title
        assert event.description == raw.description
        assert event.category == raw.category
        assert event.severity is None
        assert event.confidence is None
        assert event.timestamp == raw.timestamp
        assert event.location == raw.location
        assert event.keywords == raw.keywords
        assert event.source == EventSource.TWITTER
        assert event.media_url == raw.media_url
        assert event.metadata == {'tweet_id': '123'}
        assert event.source_event_ids == (raw.id,)
        assert event.aggregation_method == AggregationMethod.PASSTHROUGH
        assert gateway.summary_calls == []

    @pytest.mark.asyncio
    async def test_passthrough_is_idempotent(self, gateway, make_event):
        raw = make_event()
        stage = SynthesisStage(gateway)
        first = await stage.synthesize(Cluster(members=[raw]))
        second = await stage.synthesize(Cluster(members=[raw]))
        assert first == second


class TestAISynthesis:

    @pytest.mark.asyncio
    async def test_summary_becomes_description(self, gateway, make_event):
        text = "Gridlock on 80 Feet Road after bus breakdown\nAvoid the stretch until noon."
        gateway.summary = SummaryResult(text=text)
        a = make_event(severity=EventSeverity.LOW)
        b = make_event(severity=EventSeverity.HIGH)

        event = await SynthesisStage(gateway).synthesize(Cluster(members=[a, b]))

        assert event.aggregation_method == AggregationMethod.AI_SYNTHESIS
        assert event.description == text
        assert event.content == text
        assert event.ai_summary == text
        assert event.title == "Gridlock on 80 Feet Road after bus breakdown"
        assert event.source == EventSource.SYSTEM_GENERATED
        assert event.source_event_ids == (a.id, b.id)
        assert get_id_type(event.id) == 'event'
        assert event.metadata['aggregated_event_count'] == 2
        assert event.metadata['ai_synthesis_length'] == len(text)
        assert event.metadata['similarity_threshold'] == 0.75

    @pytest.mark.asyncio
    async def test_summary_context(self, gateway, make_event):
        gateway.summary = SummaryResult(text="Short")
        members = [make_event(area="Koramangala"), make_event(area="Koramangala")]

        await SynthesisStage(gateway).synthesize(Cluster(members=members))

        events, context = gateway.summary_calls[0]
        assert context == "Aggregating 2 similar events from Koramangala area about TRAFFIC category"
        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_no_usable_title_line_keeps_representative_title(self, gateway, make_event):
        gateway.summary = SummaryResult(text="Short")
        a = make_event(title="Representative title")

        event = await SynthesisStage(gateway).synthesize(Cluster(members=[a, make_event()]))

        assert event.title == "Representative title"

    def test_extract_title_bounds(self):
        assert extract_title("0123456789\nfallback", "rep") == "rep"
        assert extract_title("0123456789a", "rep") == "0123456789a"
        assert extract_title("x" * 100, "rep") == "rep"
        assert extract_title("x" * 99, "rep") == "x" * 99


class TestManualFallback:

    @pytest.mark.asyncio
    async def test_summary_failure_uses_template(self, gateway, make_event):
        gateway.summary = TimeoutError("deadline")
        members = [make_event(area="Koramangala") for _ in range(3)]

        event = await SynthesisStage(gateway).synthesize(Cluster(members=members))

        assert event.aggregation_method == AggregationMethod.MANUAL_FALLBACK
        assert event.title == "Multiple TRAFFIC reports"
        assert event.description == (
            "Multiple TRAFFIC reports in Koramangala area. 3 similar events aggregated."
        )
        assert 'ai_synthesis_length' not in event.metadata

    @pytest.mark.asyncio
    async def test_blank_summary_counts_as_failure(self, gateway, make_event):
        gateway.summary = SummaryResult(text="   ")
        event = await SynthesisStage(gateway).synthesize(Cluster(members=[make_event(), make_event()]))
        assert event.aggregation_method == AggregationMethod.MANUAL_FALLBACK

    @pytest.mark.asyncio
    async def test_unknown_area_label(self, gateway, make_event):
        members = [make_event(area=None), make_event(area=None)]
        event = await SynthesisStage(gateway).synthesize(Cluster(members=members))
        assert "in Unknown Area area." in event.description


class TestAggregates:

    @pytest.mark.asyncio
    async def test_severity_is_max_with_absent_as_low(self, gateway, make_event):
        members = [
            make_event(severity=None),
            make_event(severity=EventSeverity.CRITICAL),
            make_event(severity=EventSeverity.MODERATE),
        ]
        event = await SynthesisStage(gateway).synthesize(Cluster(members=members))
        assert event.severity == EventSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_severity_never_below_any_member(self, gateway, make_event):
        ladder = [EventSeverity.LOW, EventSeverity.MODERATE, EventSeverity.HIGH, EventSeverity.CRITICAL]
        for top in ladder:
            members = [make_event(severity=s) for s in ladder if s.rank <= top.rank]
            event = await SynthesisStage(gateway).synthesize(Cluster(members=members + [make_event(severity=None)]))
            assert all(event.severity.rank >= (m.severity or EventSeverity.LOW).rank for m in members)

    @pytest.mark.asyncio
    async def test_latest_timestamp_and_first_location(self, gateway, make_event):
        members = [
            make_event(timestamp=None, area=None),
            make_event(timestamp=datetime(2025, 7, 20, 8, 10), area="Indiranagar"),
            make_event(timestamp=datetime(2025, 7, 20, 9, 40), area="HAL"),
        ]
        event = await SynthesisStage(gateway).synthesize(Cluster(members=members))
        assert event.timestamp == datetime(2025, 7, 20, 9, 40)
        assert event.location == Location(area="Indiranagar")

    @pytest.mark.asyncio
    async def test_all_timestamps_missing_stays_missing(self, gateway, make_event):
        members = [make_event(timestamp=None), make_event(timestamp=None)]
        event = await SynthesisStage(gateway).synthesize(Cluster(members=members))
        assert event.timestamp is None

    @pytest.mark.asyncio
    async def test_keywords_union_dedup_and_cap(self, gateway, make_event):
        members = [
            make_event(keywords=("rain", "flood")),
            make_event(keywords=("flood", "underpass", "traffic")),
        ]
        stage = SynthesisStage(gateway, Parameters(max_keywords=3))
        event = await stage.synthesize(Cluster(members=members))
        assert event.keywords == ("rain", "flood", "underpass")

    @pytest.mark.asyncio
    async def test_confidence_mean_defaults_absent_to_half(self, gateway, make_event):
        members = [make_event(confidence=0.9), make_event(confidence=None)]
        event = await SynthesisStage(gateway).synthesize(Cluster(members=members))
        assert event.confidence == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_category_from_members(self, gateway, make_event):
        members = [make_event(category=EventCategory.WEATHER), make_event(category=EventCategory.WEATHER)]
        event = await SynthesisStage(gateway).synthesize(Cluster(members=members))
        assert event.category == EventCategory.WEATHER

    @pytest.mark.asyncio
    async def test_first_media_url(self, gateway, make_event):
        members = [make_event(), make_event(media_url="https://img.example/2.jpg")]
        event = await SynthesisStage(gateway).synthesize(Cluster(members=members))
        assert event.media_url == "https://img.example/2.jpg"
