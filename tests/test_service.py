"""Tests for the structured event service and the error taxonomy."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from ai_calendar_mcp.app import build_app
from ai_calendar_mcp.config import Settings
from ai_calendar_mcp.exceptions import (
    CalendarError,
    DatabaseOperationError,
    EventNotFoundError,
    StoreError,
    UnsupportedOperationError,
    ValidationError,
    problem_details,
)
from ai_calendar_mcp.service import CalendarService, CreateEventRequest, UpdateEventRequest

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _request(**overrides) -> CreateEventRequest:
    fields = dict(
        title="Planning",
        start_time=NOW + timedelta(days=1),
        end_time=NOW + timedelta(days=1, hours=1),
        location="Room 2",
        description="Q2 roadmap",
    )
    fields.update(overrides)
    return CreateEventRequest(**fields)


@pytest.fixture
def service(any_store):
    return CalendarService(any_store, clock=lambda: NOW)


class TestCreate:
    async def test_create_and_read_back(self, service):
        created = await service.create_event(_request())
        fetched = await service.get_event(created.id)
        assert fetched.title == "Planning"
        assert fetched.start == NOW + timedelta(days=1)
        assert fetched.end == NOW + timedelta(days=1, hours=1)
        assert fetched.location == "Room 2"
        assert fetched.description == "Q2 roadmap"

    async def test_errors_are_aggregated(self, service, any_store):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_event(_request(
                title="t" * 201,
                end_time=NOW + timedelta(hours=12),
                location="l" * 301,
                description="d" * 1001,
            ))
        errors = exc_info.value.errors
        assert set(errors) == {"title", "end_time", "location", "description"}
        assert errors["end_time"] == ["Start time must be before end time"]
        assert await any_store.list_all() == []

    async def test_missing_title(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_event(_request(title="  "))
        assert exc_info.value.errors == {"title": ["Title is required"]}

    async def test_start_in_the_past(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_event(_request(
                start_time=NOW - timedelta(minutes=10),
                end_time=NOW + timedelta(hours=1),
            ))
        assert "start_time" in exc_info.value.errors

    async def test_clock_skew_tolerated(self, service):
        created = await service.create_event(_request(
            start_time=NOW - timedelta(minutes=4),
            end_time=NOW + timedelta(hours=1),
        ))
        assert created.id is not None

    async def test_naive_times_are_utc(self, service):
        created = await service.create_event(_request(
            start_time=datetime(2026, 3, 10, 9, 0),
            end_time=datetime(2026, 3, 10, 10, 0),
        ))
        assert created.start == datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


class TestReadUpdateDelete:
    async def test_get_missing(self, service):
        with pytest.raises(EventNotFoundError) as exc_info:
            await service.get_event(404)
        assert exc_info.value.event_id == 404

    async def test_id_beyond_integer_range(self, service):
        with pytest.raises(EventNotFoundError):
            await service.get_event(2**70)
        with pytest.raises(EventNotFoundError):
            await service.delete_event(2**70)

    async def test_partial_update(self, service):
        created = await service.create_event(_request())
        updated = await service.update_event(UpdateEventRequest(id=created.id, location="Room 9"))
        assert updated.location == "Room 9"
        assert updated.title == "Planning"
        assert updated.description == "Q2 roadmap"

    async def test_update_rejects_inverted_times(self, service):
        created = await service.create_event(_request())
        with pytest.raises(ValidationError):
            await service.update_event(UpdateEventRequest(id=created.id, end_time=NOW))
        assert (await service.get_event(created.id)).end == NOW + timedelta(days=1, hours=1)

    async def test_update_missing(self, service):
        with pytest.raises(EventNotFoundError):
            await service.update_event(UpdateEventRequest(id=77, title="X"))

    async def test_delete(self, service):
        created = await service.create_event(_request())
        await service.delete_event(created.id)
        with pytest.raises(EventNotFoundError):
            await service.get_event(created.id)
        with pytest.raises(EventNotFoundError):
            await service.delete_event(created.id)

    async def test_list_range(self, service):
        await service.create_event(_request(title="Soon"))
        await service.create_event(_request(
            title="Later",
            start_time=NOW + timedelta(days=10),
            end_time=NOW + timedelta(days=10, hours=1),
        ))
        events = await service.list_events(end=NOW + timedelta(days=2))
        assert [e.title for e in events] == ["Soon"]

    async def test_store_fault_is_wrapped(self):
        store = AsyncMock()
        cause = StoreError("database is locked")
        store.get = AsyncMock(side_effect=cause)
        service = CalendarService(store, clock=lambda: NOW)
        with pytest.raises(DatabaseOperationError) as exc_info:
            await service.get_event(1)
        assert exc_info.value.__cause__ is cause
        assert exc_info.value.operation == "get_event"


class TestCreateFromText:
    async def test_fallback_creates_event(self, memory_store, offline_chat):
        app = build_app(Settings(), store=memory_store, chat=offline_chat, clock=lambda: NOW)
        event = await app.service.create_event_from_text("book a haircut")
        assert event.title == "book a haircut"
        assert event.start == NOW + timedelta(hours=1)

    async def test_non_create_text_rejected(self, memory_store, offline_chat):
        app = build_app(Settings(), store=memory_store, chat=offline_chat, clock=lambda: NOW)
        with pytest.raises(CalendarError):
            await app.service.create_event_from_text("show my calendar")

    async def test_requires_pipeline(self, memory_store):
        with pytest.raises(RuntimeError):
            await CalendarService(memory_store).create_event_from_text("book a haircut")


class TestProblemDetails:
    def test_validation(self):
        problem = problem_details(ValidationError("bad", {"title": ["Title is required"]}))
        assert problem["status"] == 400
        assert problem["error_code"] == "VALIDATION_ERROR"
        assert problem["details"] == {"title": ["Title is required"]}

    def test_validation_for_field(self):
        exc = ValidationError.for_field("end_time", "Start time must be before end time")
        assert exc.errors == {"end_time": ["Start time must be before end time"]}
        assert "end_time" in exc.message

    def test_not_found(self):
        problem = problem_details(EventNotFoundError(5))
        assert problem["status"] == 404
        assert problem["details"] == {"event_id": 5}

    def test_database_error_hides_cause(self):
        problem = problem_details(DatabaseOperationError("create_event", StoreError("disk /var/secret full")))
        assert problem["status"] == 500
        assert "secret" not in problem["detail"]

    def test_other_calendar_error(self):
        problem = problem_details(UnsupportedOperationError("calendar.teleport"))
        assert problem["status"] == 400
        assert problem["error_code"] == "UNSUPPORTED_OPERATION"

    def test_unexpected(self):
        problem = problem_details(KeyError("internal detail"))
        assert problem["status"] == 500
        assert problem["error_code"] == "INTERNAL_ERROR"
        assert "internal detail" not in problem["detail"]
