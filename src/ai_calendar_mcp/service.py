"""Structured (non natural-language) event operations with DTO validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from .backends import EventStore
from .exceptions import CalendarError, DatabaseOperationError, EventNotFoundError, StoreError, ValidationError
from .models import (
    DESCRIPTION_MAX_LENGTH,
    LOCATION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    Event,
    to_utc,
    utcnow,
)
from .pipeline import CommandPipeline

logger = logging.getLogger("ai-calendar-mcp")

# Clock-skew tolerance for start times slightly in the past
PAST_START_TOLERANCE = timedelta(minutes=5)


@dataclass
class CreateEventRequest:
    title: str
    start_time: datetime
    end_time: datetime
    location: str | None = None
    description: str | None = None


@dataclass
class UpdateEventRequest:
    id: int
    title: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    location: str | None = None
    description: str | None = None


class _Errors:
    """Collects messages per field so every problem is reported at once."""

    def __init__(self):
        self.errors: dict[str, list[str]] = {}

    def add(self, field_name: str, message: str) -> None:
        self.errors.setdefault(field_name, []).append(message)

    def raise_if_any(self) -> None:
        if self.errors:
            raise ValidationError("One or more validation errors occurred", self.errors)


def _check_text(errors: _Errors, field_name: str, value: str | None, max_length: int) -> None:
    if value is not None and len(value) > max_length:
        errors.add(field_name, f"{field_name.capitalize()} must be {max_length} characters or fewer")


class CalendarService:
    def __init__(
        self,
        store: EventStore,
        pipeline: CommandPipeline | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._pipeline = pipeline
        self._clock = clock

    def _check_times(self, errors: _Errors, start: datetime, end: datetime, check_past: bool) -> None:
        if start >= end:
            errors.add("end_time", "Start time must be before end time")
        if check_past and start < self._clock() - PAST_START_TOLERANCE:
            errors.add("start_time", "Start time cannot be in the past")

    def _validate_create(self, request: CreateEventRequest) -> None:
        errors = _Errors()
        if not request.title or not request.title.strip():
            errors.add("title", "Title is required")
        else:
            _check_text(errors, "title", request.title.strip(), TITLE_MAX_LENGTH)
        if request.start_time is None:
            errors.add("start_time", "Start time is required")
        if request.end_time is None:
            errors.add("end_time", "End time is required")
        if request.start_time is not None and request.end_time is not None:
            self._check_times(errors, to_utc(request.start_time), to_utc(request.end_time), True)
        _check_text(errors, "location", request.location, LOCATION_MAX_LENGTH)
        _check_text(errors, "description", request.description, DESCRIPTION_MAX_LENGTH)
        errors.raise_if_any()

    async def _guard(self, operation: str, call):
        try:
            return await call
        except StoreError as e:
            raise DatabaseOperationError(operation, e) from e

    async def create_event(self, request: CreateEventRequest) -> Event:
        self._validate_create(request)
        event = Event(
            title=request.title.strip(),
            start=to_utc(request.start_time),
            end=to_utc(request.end_time),
            location=request.location.strip() if request.location else None,
            description=request.description.strip() if request.description else None,
        )
        created = await self._guard("create_event", self._store.add(event))
        logger.info("Created event %s: %s", created.id, created.title)
        return created

    async def get_event(self, event_id: int) -> Event:
        event = await self._guard("get_event", self._store.get(event_id))
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    async def update_event(self, request: UpdateEventRequest) -> Event:
        event = await self.get_event(request.id)

        errors = _Errors()
        if request.title is not None:
            if not request.title.strip():
                errors.add("title", "Title cannot be empty")
            else:
                _check_text(errors, "title", request.title.strip(), TITLE_MAX_LENGTH)
                event.title = request.title.strip()
        start_changed = request.start_time is not None
        if start_changed:
            event.start = to_utc(request.start_time)
        if request.end_time is not None:
            event.end = to_utc(request.end_time)
        self._check_times(errors, event.start, event.end, start_changed)
        _check_text(errors, "location", request.location, LOCATION_MAX_LENGTH)
        _check_text(errors, "description", request.description, DESCRIPTION_MAX_LENGTH)
        errors.raise_if_any()

        if request.location is not None:
            event.location = request.location.strip()
        if request.description is not None:
            event.description = request.description.strip()

        updated = await self._guard("update_event", self._store.update(event))
        logger.info("Updated event %s", updated.id)
        return updated

    async def delete_event(self, event_id: int) -> None:
        deleted = await self._guard("delete_event", self._store.delete(event_id))
        if not deleted:
            raise EventNotFoundError(event_id)
        logger.info("Deleted event %s", event_id)

    async def list_events(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        return await self._guard(
            "list_events",
            self._store.list_range(
                to_utc(start) if start else None,
                to_utc(end) if end else None,
                limit,
            ),
        )

    async def create_event_from_text(self, text: str) -> Event:
        """Create an event from a sentence via the natural-language pipeline."""
        if self._pipeline is None:
            raise RuntimeError("CalendarService was built without a pipeline")
        response = await self._pipeline.process(text)
        if not response.success:
            missing = response.body.get("missing_fields")
            if missing:
                raise ValidationError(
                    response.body.get("error", "Missing required information"),
                    {name: ["This field is required"] for name in missing},
                )
            if response.status == 400:
                raise ValidationError(response.body.get("error") or "Request could not be processed")
            raise CalendarError("COMMAND_FAILED", response.body.get("error") or "Request could not be processed")
        result = response.body.get("result") or {}
        if result.get("kind") != "saved":
            raise ValidationError("Text did not describe a new event")
        return await self.get_event(result["id"])
