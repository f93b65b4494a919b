"""
OpenAI-backed classification gateway.

One chat-completions call per task label, JSON object responses for
classification, plain text for summaries. Every failure (API error,
malformed JSON, unusable confidence) comes back as a failed result so the
pipeline stages can fall back without try/except of their own.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI

from pulse.gateway import ClassificationError, ClassificationResult, SummaryResult, TaskLabel
from pulse.types import EventCategory, RawEvent

logger = logging.getLogger(__name__)

CATEGORY_CHOICES = "|".join(c.value for c in EventCategory)

PROMPTS = {
    TaskLabel.SIMILARITY_CHECK: """Two city event reports are given below, separated by " vs ".

{text}

Decide whether both reports describe the same real-world occurrence
(same incident, same place, same time), not merely the same kind of event.

Respond in JSON format:
{{"similar": true|false, "confidence": <0.0 to 1.0 that they are the same occurrence>, "reason": "<one sentence>"}}""",

    TaskLabel.CONTENT_ANALYSIS: """Analyze this city-related report and extract key information:

"{text}"

Respond in JSON format:
{{
    "category": "{categories}",
    "severity": "LOW|MODERATE|HIGH|CRITICAL",
    "title": "<concise title>",
    "summary": "<brief summary>",
    "keywords": ["<keyword1>", "<keyword2>"],
    "location": {{"area": "<area if mentioned>", "landmark": "<landmark if mentioned>", "address": "<address if mentioned>"}},
    "confidence": <0.0 to 1.0>
}}
Use null for anything the report does not mention.""",

    TaskLabel.SENTIMENT_ANALYSIS: """Analyze the sentiment of the following text about a city event:

"{text}"

Score interpretation: positive 0.1 to 1.0, negative -1.0 to -0.1, neutral -0.1 to 0.1.

Respond in JSON format:
{{"sentiment": "POSITIVE|NEGATIVE|NEUTRAL|MIXED", "score": <-1.0 to 1.0>, "confidence": <0.0 to 1.0>}}""",

    TaskLabel.LOCATION_ENHANCEMENT: """Extract the most specific location information from this city event report:

"{text}"

Respond in JSON format:
{{
    "area": "<neighbourhood or area>",
    "landmark": "<nearby landmark>",
    "address": "<street address>",
    "pincode": "<postal code>",
    "latitude": <number or null>,
    "longitude": <number or null>,
    "confidence": <0.0 to 1.0>
}}
Use null for anything that cannot be determined from the text.""",

    TaskLabel.SEVERITY_ANALYSIS: """Determine the severity of this city event report:

"{text}"

CRITICAL: immediate danger to life, fires, collapses, major flooding
HIGH: significant incidents needing prompt response, accidents, road blockages
MODERATE: issues needing attention but not urgent, minor disruptions, outages in small areas
LOW: routine or informational reports

Respond in JSON format:
{{"severity": "LOW|MODERATE|HIGH|CRITICAL", "confidence": <0.0 to 1.0>, "summary": "<one sentence reasoning>"}}""",

    TaskLabel.IMAGE_ANALYSIS: """Analyze this image related to a city event.
Additional context: {text}

Respond in JSON format:
{{
    "description": "<what the image shows>",
    "category": "{categories}",
    "severity": "LOW|MODERATE|HIGH|CRITICAL",
    "location_clues": ["<visible location indicators>"],
    "objects_detected": ["<key objects>"],
    "suggested_title": "<suggested title>",
    "actionable_insights": "<what citizens should know or do>",
    "confidence": <0.0 to 1.0>
}}""",

    TaskLabel.INSIGHTS_GENERATION: """{text}

Respond in JSON format:
{{"keywords": ["<keyword>"], "summary": "<two sentences of context citizens would find useful>", "confidence": <0.0 to 1.0>}}""",
}

SUMMARY_PROMPT = """You are helping citizens understand what is happening in their city.

Context: {context}

Related reports to synthesize:
{reports}

Synthesize these reports into a single clear summary that:
1. Starts with a one-line headline on its own line
2. Combines the shared facts and drops repetition
3. Keeps location-specific details
4. Says what citizens should do, if anything

Respond with just the summary text, no JSON and no prefixes."""


def format_reports(events: Sequence[RawEvent]) -> str:
    blocks = []
    for i, event in enumerate(events, 1):
        location = event.location
        where = ", ".join(
            part for part in (
                location.address if location else None,
                location.landmark if location else None,
                location.area if location else None,
            ) if part
        ) or "Unknown"
        blocks.append(
            f"Report {i}:\n"
            f"Title: {event.title}\n"
            f"Description: {event.description or ''}\n"
            f"Location: {where}\n"
            f"Category: {event.category.value if event.category else 'UNKNOWN'}\n"
            f"Severity: {event.severity.value if event.severity else 'UNKNOWN'}"
        )
    return "\n\n".join(blocks)


def parse_payload(content: Optional[str]) -> Dict[str, Any]:
    """JSON object from a model response, or ClassificationError."""
    if not content:
        raise ClassificationError("empty response")
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise ClassificationError(f"invalid JSON: {e}")
    if not isinstance(payload, dict):
        raise ClassificationError(f"expected JSON object, got {type(payload).__name__}")
    return payload


def parse_confidence(value: Any) -> Optional[float]:
    """Clamp to [0, 1]; absent stays None."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ClassificationError(f"non-numeric confidence: {value!r}")
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        raise ClassificationError(f"non-numeric confidence: {value!r}")
    if confidence != confidence:  # NaN
        raise ClassificationError("confidence is NaN")
    return max(0.0, min(1.0, confidence))


class OpenAIClassificationGateway:
    """
    ClassificationGateway over the OpenAI chat completions API.

    Usage:
        gateway = OpenAIClassificationGateway(AsyncOpenAI(api_key=...))
        result = await gateway.classify(text, TaskLabel.SEVERITY_ANALYSIS, timeout=15)
    """

    def __init__(
        self,
        openai_client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        vision_model: str = "gpt-4o-mini",
        summary_model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        max_tokens: int = 500
    ):
        self.openai = openai_client
        self.model = model
        self.vision_model = vision_model
        self.summary_model = summary_model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_messages(self, text: str, task_label: str, image_url: Optional[str] = None) -> List[dict]:
        template = PROMPTS.get(task_label)
        if template is None:
            raise ClassificationError(f"unknown task label: {task_label}")

        prompt = template.format(text=text, categories=CATEGORY_CHOICES)

        if task_label == TaskLabel.IMAGE_ANALYSIS and image_url:
            return [{
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            }]
        return [{"role": "user", "content": prompt}]

    async def classify(
        self,
        text: str,
        task_label: str,
        *,
        timeout: float,
        image_url: Optional[str] = None
    ) -> ClassificationResult:
        model = self.vision_model if task_label == TaskLabel.IMAGE_ANALYSIS else self.model
        try:
            messages = self.build_messages(text, task_label, image_url)
            response = await self.openai.chat.completions.create(
                model=model,
                messages=messages,
                response_format={"type": "json_object"},
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=timeout,
            )
            payload = parse_payload(response.choices[0].message.content)
            confidence = parse_confidence(payload.pop("confidence", None))
        except ClassificationError as e:
            logger.warning(f"⚠️ Unusable {task_label} response: {e}")
            return ClassificationResult.failure(e)
        except Exception as e:
            logger.warning(f"⚠️ {task_label} request failed: {e}")
            return ClassificationResult.failure(e)

        return ClassificationResult(fields=payload, confidence=confidence)

    async def summarize(
        self,
        events: Sequence[RawEvent],
        context: str,
        *,
        timeout: float
    ) -> SummaryResult:
        prompt = SUMMARY_PROMPT.format(context=context, reports=format_reports(events))
        try:
            response = await self.openai.chat.completions.create(
                model=self.summary_model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.3,
                max_tokens=self.max_tokens,
                timeout=timeout,
            )
            text = (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.warning(f"⚠️ Summary request failed: {e}")
            return SummaryResult.failure(e)

        if not text:
            return SummaryResult.failure("empty summary")
        return SummaryResult(text=text)
