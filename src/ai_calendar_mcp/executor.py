"""Idempotent calendar operations behind the ``call_tool`` boundary.

Every operation answers with an ``OperationEnvelope``. Validation and
lookup failures are reported as data; store faults are logged and
flattened to a generic message.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from .backends import EventStore
from .exceptions import (
    DatabaseOperationError,
    EventNotFoundError,
    StoreError,
    UnsupportedOperationError,
    ValidationError,
)
from .models import (
    CANCEL_EVENT,
    DESCRIPTION_MAX_LENGTH,
    LIST_EVENTS,
    LOCATION_MAX_LENGTH,
    SAVE_EVENT,
    TITLE_MAX_LENGTH,
    UPDATE_EVENT,
    CancelledEvent,
    Event,
    EventList,
    OperationEnvelope,
    SavedEvent,
    UpdatedEvent,
    parse_datetime,
    to_utc,
)

logger = logging.getLogger("ai-calendar-mcp")

TOOL_NAMES = (SAVE_EVENT, UPDATE_EVENT, CANCEL_EVENT, LIST_EVENTS)


def _invalid(field_name: str, message: str) -> ValidationError:
    return ValidationError(message, {field_name: [message]})


def _datetime_param(params: dict[str, Any], key: str, label: str) -> datetime | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if not isinstance(value, str):
        raise _invalid(key, f"Invalid {label}: {value!r}")
    try:
        return parse_datetime(value)
    except (ValueError, OverflowError):
        raise _invalid(key, f"Invalid {label}: {value}")


def _text_param(params: dict[str, Any], key: str, max_length: int | None = None) -> str | None:
    value = params.get(key)
    if value is None:
        return None
    text = str(value).strip()
    if max_length is not None and len(text) > max_length:
        raise _invalid(key, f"{key.capitalize()} must be {max_length} characters or fewer")
    return text


def _attendees_param(params: dict[str, Any]) -> list[str] | None:
    value = params.get("attendees")
    if value is None:
        return None
    if not isinstance(value, list):
        raise _invalid("attendees", "Attendees must be a list of addresses")
    return [str(a).strip() for a in value if str(a).strip()]


def _event_id_param(raw_id: Any) -> int:
    # Whole numbers only: no bools, no floats
    if isinstance(raw_id, int) and not isinstance(raw_id, bool):
        return raw_id
    if isinstance(raw_id, str) and raw_id.strip().isdecimal():
        return int(raw_id.strip())
    raise _invalid("id", f"Invalid event id: {raw_id}")


def _title_param(params: dict[str, Any]) -> str:
    title = _text_param(params, "title", TITLE_MAX_LENGTH)
    if not title:
        raise _invalid("title", "Title is required")
    return title


class MutationExecutor:
    """Applies create/update/cancel/list against an event store."""

    def __init__(self, store: EventStore):
        self._store = store
        self._handlers = {
            SAVE_EVENT: self.save_event,
            UPDATE_EVENT: self.update_event,
            CANCEL_EVENT: self.cancel_event,
            LIST_EVENTS: self.list_events,
        }

    async def call_tool(self, tool_name: str, parameters: dict[str, Any] | None = None) -> OperationEnvelope:
        logger.info(
            "Tool call: %s with parameters: %s",
            tool_name, json.dumps(parameters, default=str),
        )
        try:
            handler = self._handlers.get(tool_name)
            if handler is None:
                raise UnsupportedOperationError(tool_name)
            if parameters is None:
                parameters = {}
            if not isinstance(parameters, dict):
                raise ValidationError(f"Invalid parameters for {tool_name}")
            return OperationEnvelope.success(await handler(parameters))
        except ValidationError as e:
            return OperationEnvelope.failure(e.message, "validation")
        except EventNotFoundError as e:
            return OperationEnvelope.failure(f"Event not found: {e.event_id}", "not_found")
        except UnsupportedOperationError as e:
            logger.warning("Rejected unsupported tool: %s", tool_name)
            return OperationEnvelope.failure(e.message, "unsupported")
        except StoreError as e:
            fault = DatabaseOperationError(tool_name, e)
            logger.error("Error executing tool %s: %s", tool_name, fault.message, exc_info=fault)
            return OperationEnvelope.failure(f"Internal error while executing {tool_name}", "internal")

    async def _resolve(self, params: dict[str, Any]) -> Event:
        """Find the target event by numeric id, else by idempotency key."""
        raw_id = params.get("id")
        key = params.get("client_reference_id")
        if raw_id is not None and raw_id != "":
            event_id = _event_id_param(raw_id)
            event = await self._store.get(event_id)
            if event is None:
                raise EventNotFoundError(event_id)
            return event
        if key:
            event = await self._store.get_by_key(str(key))
            if event is None:
                raise EventNotFoundError(str(key))
            return event
        raise ValidationError("Either id or client_reference_id must be provided")

    # -- operations ----------------------------------------------------------

    async def save_event(self, params: dict[str, Any]) -> SavedEvent:
        """Create an event, or overwrite the one already holding the same key."""
        title = _title_param(params)
        start = _datetime_param(params, "start", "start time")
        if start is None:
            raise _invalid("start", "Start time is required")
        end = _datetime_param(params, "end", "end time")
        if end is None:
            raise _invalid("end", "End time is required")
        if end <= start:
            raise _invalid("end", "End time must be after start time")

        key = params.get("client_reference_id")
        event = Event(
            title=title,
            start=start,
            end=end,
            timezone=_text_param(params, "timezone") or "UTC",
            location=_text_param(params, "location", LOCATION_MAX_LENGTH),
            description=_text_param(params, "description", DESCRIPTION_MAX_LENGTH),
            notes=_text_param(params, "notes"),
            attendees=_attendees_param(params) or [],
            client_reference_id=str(key) if key else None,
        )

        if event.client_reference_id:
            stored, created = await self._store.upsert_by_key(event)
        else:
            stored, created = await self._store.add(event), True

        if created:
            logger.info("Created new event with ID: %s, Title: %s", stored.id, stored.title)
        else:
            logger.info(
                "Updated existing event %s with client_reference_id: %s",
                stored.id, stored.client_reference_id,
            )
        return SavedEvent.from_event(stored, created)

    async def update_event(self, params: dict[str, Any]) -> UpdatedEvent:
        """Partial update. Keys absent from ``params`` are left untouched."""
        event = await self._resolve(params)

        if "title" in params and params["title"] is not None:
            title = _text_param(params, "title", TITLE_MAX_LENGTH)
            if not title:
                raise _invalid("title", "Title cannot be empty")
            event.title = title
        start = _datetime_param(params, "start", "start time")
        if start is not None:
            event.start = start
        end = _datetime_param(params, "end", "end time")
        if end is not None:
            event.end = end
        timezone = _text_param(params, "timezone")
        if timezone:
            event.timezone = timezone
        if params.get("location") is not None:
            event.location = _text_param(params, "location", LOCATION_MAX_LENGTH)
        if params.get("description") is not None:
            event.description = _text_param(params, "description", DESCRIPTION_MAX_LENGTH)
        if params.get("notes") is not None:
            event.notes = _text_param(params, "notes")
        attendees = _attendees_param(params)
        if attendees is not None:
            event.attendees = attendees

        if event.end <= event.start:
            raise _invalid("end", "End time must be after start time")

        stored = await self._store.update(event)
        logger.info("Updated event ID: %s", stored.id)
        return UpdatedEvent(id=stored.id)

    async def cancel_event(self, params: dict[str, Any]) -> CancelledEvent:
        event = await self._resolve(params)
        if not await self._store.delete(event.id):
            raise EventNotFoundError(event.id)
        logger.info("Cancelled event ID: %s", event.id)
        return CancelledEvent(id=event.id)

    async def list_events(self, params: dict[str, Any]) -> EventList:
        start = _datetime_param(params, "start_date", "start date")
        end = _datetime_param(params, "end_date", "end date")
        limit = params.get("limit")
        if limit is not None:
            try:
                limit = int(limit)
            except (TypeError, ValueError):
                raise _invalid("limit", f"Invalid limit: {limit}")
            if limit <= 0:
                raise _invalid("limit", "Limit must be positive")

        events = await self._store.list_range(start, end, limit)
        return EventList(events=[e.summary() for e in events])
