"""Intent classification and event field extraction.

The model is asked for a JSON document describing the request. When the
model is unreachable, disabled, or answers with something that does not
fit the schema, a keyword heuristic produces the result instead, so
``classify`` always returns a usable ``ClassificationResult``.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Callable

from .llm import ChatClient, ChatOutcome
from .models import (
    INTENT_TO_TOOL,
    INTENTS,
    ClassificationResult,
    ExtractedEvent,
    parse_datetime,
    utcnow,
)

logger = logging.getLogger("ai-calendar-mcp")

SYSTEM_PROMPT = """
You are an AI assistant that classifies user intents for a calendar system and extracts event information.

Your task is to:
1. Classify the user's intent as one of: create, update, cancel, list
2. Extract event information from the user's message
3. Determine which calendar tool should be called
4. Identify any missing required fields

Available tools:
- calendar.save_event: For creating new events
- calendar.update_event: For updating existing events
- calendar.cancel_event: For canceling events
- calendar.list_events: For listing events

Required fields for events:
- title (required)
- start (required)
- end (required, must be after start)

Optional fields:
- timezone (default to the user's timezone if not specified)
- location
- attendees (list of email addresses)
- notes
- client_reference_id (for idempotency)

Return your response as a JSON object with this exact structure:
{
  "intent": "create|update|cancel|list",
  "confidence": 0.95,
  "extracted_event": {
    "title": "Meeting Title",
    "start": "2024-07-01T10:00:00Z",
    "end": "2024-07-01T11:00:00Z",
    "timezone": "UTC",
    "location": "Conference Room",
    "attendees": ["email1@example.com"],
    "notes": "Additional notes",
    "client_reference_id": "unique-id"
  },
  "missing_fields": ["field1", "field2"],
  "tool_to_call": "calendar.save_event"
}

For ambiguous dates like 'tomorrow' or 'next week', make reasonable assumptions based on today's date.
For missing times, assume business hours (9 AM - 5 PM).
Always respond with valid JSON only.
""".strip()

FALLBACK_CONFIDENCE = 0.7
FALLBACK_TITLE_LENGTH = 100

# Checked in this order; the first vocabulary with a hit wins.
INTENT_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("create", ("schedule", "create", "add", "book")),
    ("update", ("update", "change", "modify")),
    ("cancel", ("cancel", "delete", "remove")),
    ("list", ("list", "show", "view")),
)
DEFAULT_INTENT = "create"

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def build_system_prompt(now: datetime) -> str:
    return f"{SYSTEM_PROMPT}\n\nThe current date and time is {now.strftime('%Y-%m-%dT%H:%M:%SZ')} (UTC)."


# ---------------------------------------------------------------------------
# Heuristic fallback
# ---------------------------------------------------------------------------

def intent_from_keywords(text: str) -> str:
    lowered = text.lower()
    for intent, words in INTENT_KEYWORDS:
        if any(word in lowered for word in words):
            return intent
    return DEFAULT_INTENT


def title_from_text(text: str) -> str:
    if len(text) > FALLBACK_TITLE_LENGTH:
        return text[:FALLBACK_TITLE_LENGTH] + "..."
    return text


def fallback_classification(text: str, now: datetime) -> ClassificationResult:
    """Deterministic classification used when the model path is unusable."""
    intent = intent_from_keywords(text)
    return ClassificationResult(
        intent=intent,
        confidence=FALLBACK_CONFIDENCE,
        extracted_event=ExtractedEvent(
            title=title_from_text(text),
            start=now + timedelta(hours=1),
            end=now + timedelta(hours=2),
            timezone="UTC",
        ),
        missing_fields=[],
        tool_to_call=INTENT_TO_TOOL[intent],
        source="fallback",
    )


# ---------------------------------------------------------------------------
# Model reply parsing
# ---------------------------------------------------------------------------

def _optional_str(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _optional_datetime(raw: dict[str, Any], key: str) -> datetime | None:
    value = _optional_str(raw, key)
    if not value:
        return None
    return parse_datetime(value)


def _string_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a list of strings")
    return list(value)


def _parse_extracted_event(raw: Any) -> ExtractedEvent | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValueError("extracted_event must be an object or null")
    return ExtractedEvent(
        title=_optional_str(raw, "title"),
        start=_optional_datetime(raw, "start"),
        end=_optional_datetime(raw, "end"),
        timezone=_optional_str(raw, "timezone"),
        location=_optional_str(raw, "location"),
        attendees=_string_list(raw.get("attendees"), "attendees"),
        notes=_optional_str(raw, "notes"),
        client_reference_id=_optional_str(raw, "client_reference_id"),
    )


def _normalize_tool(name: str) -> str:
    name = name.strip()
    if name and "." not in name and f"calendar.{name}" in INTENT_TO_TOOL.values():
        return f"calendar.{name}"
    return name


def parse_model_reply(text: str) -> ClassificationResult | None:
    """Parse a model reply strictly against the classification schema.

    Returns None when the reply is not JSON or does not have the expected
    shape.
    """
    stripped = text.strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1)

    try:
        raw = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, dict):
        return None

    intent = raw.get("intent")
    if not isinstance(intent, str) or intent.strip().lower() not in INTENTS:
        return None
    confidence = raw.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return None
    tool = raw.get("tool_to_call")
    if not isinstance(tool, str):
        return None

    try:
        extracted = _parse_extracted_event(raw.get("extracted_event"))
        missing = _string_list(raw.get("missing_fields"), "missing_fields")
    except (ValueError, OverflowError) as e:
        logger.warning("Model reply does not match the schema: %s", e)
        return None

    return ClassificationResult(
        intent=intent.strip().lower(),
        confidence=float(confidence),
        extracted_event=extracted,
        missing_fields=missing,
        tool_to_call=_normalize_tool(tool),
        source="model",
    )


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

class IntentClassifier:
    def __init__(self, chat_client: ChatClient, clock: Callable[[], datetime] = utcnow):
        self._chat = chat_client
        self._clock = clock

    async def classify(self, text: str) -> ClassificationResult:
        now = self._clock()
        try:
            outcome = await self._chat.complete(build_system_prompt(now), text)
        except Exception as e:
            logger.error("LLM client raised %s", e.__class__.__name__, exc_info=e)
            outcome = ChatOutcome(error=f"client error: {e.__class__.__name__}")

        if outcome.ok:
            logger.info("LLM response: %s", outcome.text)
            result = parse_model_reply(outcome.text)
            if result is not None:
                return result
            logger.error("Failed to parse LLM response as classification JSON")
        else:
            logger.error("LLM classification unavailable: %s", outcome.error)

        result = fallback_classification(text, now)
        logger.info("Fallback classification: intent=%s tool=%s", result.intent, result.tool_to_call)
        return result
