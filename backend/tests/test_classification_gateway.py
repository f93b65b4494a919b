"""
Tests for the OpenAI classification gateway with a mocked client.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from pulse.gateway import ClassificationError, TaskLabel
from pulse.types import EventCategory, Location, RawEvent
from services.classification_gateway import (
    OpenAIClassificationGateway,
    format_reports,
    parse_confidence,
    parse_payload,
)


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def mock_client(content=None, side_effect=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion(content), side_effect=side_effect)
    return client


class TestClassify:

    @pytest.mark.asyncio
    async def test_json_fields_and_confidence(self):
        client = mock_client(json.dumps({"severity": "HIGH", "confidence": 0.87, "summary": "Road blocked"}))
        gateway = OpenAIClassificationGateway(client, model="gpt-test")

        result = await gateway.classify("Tree fell on road", TaskLabel.SEVERITY_ANALYSIS, timeout=5)

        assert result.ok
        assert result.confidence == 0.87
        assert result.fields == {"severity": "HIGH", "summary": "Road blocked"}
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs['model'] == "gpt-test"
        assert kwargs['response_format'] == {"type": "json_object"}
        assert kwargs['timeout'] == 5
        assert "Tree fell on road" in kwargs['messages'][0]['content']

    @pytest.mark.asyncio
    async def test_confidence_is_clamped(self):
        client = mock_client(json.dumps({"similar": True, "confidence": 1.7}))
        result = await OpenAIClassificationGateway(client).classify("a vs b", TaskLabel.SIMILARITY_CHECK, timeout=5)
        assert result.confidence == 1.0

    @pytest.mark.asyncio
    async def test_missing_confidence_stays_absent(self):
        client = mock_client(json.dumps({"similar": True}))
        result = await OpenAIClassificationGateway(client).classify("a vs b", TaskLabel.SIMILARITY_CHECK, timeout=5)
        assert result.ok
        assert result.confidence is None
        assert result.effective_confidence == 0.0

    @pytest.mark.asyncio
    async def test_invalid_json_is_a_failure(self):
        client = mock_client("Sure! The severity is HIGH.")
        result = await OpenAIClassificationGateway(client).classify("x", TaskLabel.SEVERITY_ANALYSIS, timeout=5)
        assert not result.ok
        assert "invalid JSON" in result.error

    @pytest.mark.asyncio
    async def test_non_numeric_confidence_is_a_failure(self):
        client = mock_client(json.dumps({"severity": "LOW", "confidence": "very"}))
        result = await OpenAIClassificationGateway(client).classify("x", TaskLabel.SEVERITY_ANALYSIS, timeout=5)
        assert not result.ok

    @pytest.mark.asyncio
    async def test_api_error_is_a_failure(self):
        client = mock_client(side_effect=RuntimeError("rate limited"))
        result = await OpenAIClassificationGateway(client).classify("x", TaskLabel.CONTENT_ANALYSIS, timeout=5)
        assert not result.ok
        assert result.error == "rate limited"

    @pytest.mark.asyncio
    async def test_unknown_label_is_a_failure_without_a_call(self):
        client = mock_client("{}")
        result = await OpenAIClassificationGateway(client).classify("x", "TRANSLATION", timeout=5)
        assert not result.ok
        client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_image_analysis_uses_vision_model_and_image_part(self):
        client = mock_client(json.dumps({"description": "Flooded street", "confidence": 0.6}))
        gateway = OpenAIClassificationGateway(client, model="text-model", vision_model="vision-model")

        await gateway.classify(
            "Event: Flooding", TaskLabel.IMAGE_ANALYSIS, timeout=5, image_url="https://img.example/f.jpg"
        )

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs['model'] == "vision-model"
        parts = kwargs['messages'][0]['content']
        assert parts[0]['type'] == "text"
        assert parts[1] == {"type": "image_url", "image_url": {"url": "https://img.example/f.jpg"}}


class TestSummarize:

    @pytest.mark.asyncio
    async def test_plain_text_summary(self):
        client = mock_client("  Flooding at Silk Board\nAvoid the junction.  ")
        gateway = OpenAIClassificationGateway(client, summary_model="summary-model")
        events = [RawEvent(id="rw_1", title="Flooding", category=EventCategory.WEATHER)]

        result = await gateway.summarize(events, "Aggregating 1 similar events", timeout=10)

        assert result.ok
        assert result.text == "Flooding at Silk Board\nAvoid the junction."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs['model'] == "summary-model"
        assert 'response_format' not in kwargs
        assert "Aggregating 1 similar events" in kwargs['messages'][0]['content']

    @pytest.mark.asyncio
    async def test_empty_summary_is_a_failure(self):
        client = mock_client("   ")
        result = await OpenAIClassificationGateway(client).summarize([], "ctx", timeout=10)
        assert not result.ok

    @pytest.mark.asyncio
    async def test_api_error_is_a_failure(self):
        client = mock_client(side_effect=TimeoutError())
        result = await OpenAIClassificationGateway(client).summarize([], "ctx", timeout=10)
        assert result.error == "TimeoutError"


class TestParsing:

    def test_parse_payload_rejects_non_objects(self):
        with pytest.raises(ClassificationError):
            parse_payload("[1, 2]")
        with pytest.raises(ClassificationError):
            parse_payload("")

    def test_parse_confidence(self):
        assert parse_confidence(None) is None
        assert parse_confidence("0.4") == 0.4
        assert parse_confidence(-3) == 0.0
        with pytest.raises(ClassificationError):
            parse_confidence(float("nan"))
        with pytest.raises(ClassificationError):
            parse_confidence(True)

    def test_format_reports(self):
        events = [
            RawEvent(id="rw_1", title="Tree fall", location=Location(area="Jayanagar", landmark="4th Block")),
            RawEvent(id="rw_2", title="Branch down"),
        ]
        text = format_reports(events)
        assert "Report 1:\nTitle: Tree fall" in text
        assert "Location: 4th Block, Jayanagar" in text
        assert "Location: Unknown" in text
        assert "Category: UNKNOWN" in text
