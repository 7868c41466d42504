"""Maps a classification to a calendar operation and its parameters."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from .executor import MutationExecutor
from .models import (
    CANCEL_EVENT,
    LIST_EVENTS,
    SAVE_EVENT,
    UPDATE_EVENT,
    ClassificationResult,
    OperationEnvelope,
    format_utc,
)

logger = logging.getLogger("ai-calendar-mcp")

LIST_PAGE_SIZE = 50


def _no_event_data(operation: str) -> OperationEnvelope:
    return OperationEnvelope.failure(f"No event data extracted for {operation} operation", "validation")


def build_parameters(result: ClassificationResult) -> tuple[str, dict[str, Any]] | OperationEnvelope:
    """Return ``(tool_name, parameters)``, or an error envelope if the
    classification cannot be turned into a call."""
    tool = result.tool_to_call
    event = result.extracted_event

    if tool == SAVE_EVENT:
        if event is None or not event.title or event.start is None or event.end is None:
            return _no_event_data("save")
        return tool, {
            "title": event.title,
            "start": format_utc(event.start),
            "end": format_utc(event.end),
            "timezone": event.timezone or "UTC",
            "location": event.location,
            "attendees": list(event.attendees),
            "notes": event.notes,
            "client_reference_id": event.client_reference_id or str(uuid.uuid4()),
        }

    if tool == UPDATE_EVENT:
        if event is None:
            return _no_event_data("update")
        params: dict[str, Any] = {}
        if event.client_reference_id:
            params["client_reference_id"] = event.client_reference_id
        if event.title:
            params["title"] = event.title
        if event.start is not None:
            params["start"] = format_utc(event.start)
        if event.end is not None:
            params["end"] = format_utc(event.end)
        if event.location:
            params["location"] = event.location
        if event.attendees:
            params["attendees"] = list(event.attendees)
        if event.notes:
            params["notes"] = event.notes
        return tool, params

    if tool == CANCEL_EVENT:
        if event is None:
            return _no_event_data("cancel")
        params = {}
        if event.client_reference_id:
            params["client_reference_id"] = event.client_reference_id
        return tool, params

    if tool == LIST_EVENTS:
        # Fallback timestamps are placeholders, not a range the user asked for
        bounded = event is not None and result.source == "model"
        start = event.start if bounded else None
        end = event.end if bounded else None
        return tool, {
            "start_date": format_utc(start) if start is not None else None,
            "end_date": format_utc(end) if end is not None else None,
            "limit": LIST_PAGE_SIZE,
        }

    return OperationEnvelope.failure(f"Unknown or unsupported tool: {tool}", "unsupported")


class CommandRouter:
    def __init__(self, executor: MutationExecutor):
        self._executor = executor

    async def route(self, result: ClassificationResult) -> OperationEnvelope:
        built = build_parameters(result)
        if isinstance(built, OperationEnvelope):
            logger.warning("Cannot route %s: %s", result.tool_to_call, built.error)
            return built
        tool, params = built
        return await self._executor.call_tool(tool, params)
