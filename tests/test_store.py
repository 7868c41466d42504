"""Tests for the event store backends."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from ai_calendar_mcp.backends import EventStore
from ai_calendar_mcp.backends.sqlite_backend import SQLiteEventStore
from ai_calendar_mcp.exceptions import StoreError
from ai_calendar_mcp.models import Event


def _make_event(
    title: str = "Team Meeting",
    start: datetime | None = None,
    hours: int = 1,
    key: str | None = None,
    **kwargs,
) -> Event:
    start = start or datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc)
    return Event(
        title=title,
        start=start,
        end=start + timedelta(hours=hours),
        client_reference_id=key,
        **kwargs,
    )


class TestProtocol:
    async def test_backends_satisfy_protocol(self, any_store):
        assert isinstance(any_store, EventStore)


class TestAddAndGet:
    async def test_add_assigns_id_and_timestamps(self, any_store):
        stored = await any_store.add(_make_event())
        assert stored.id is not None
        assert stored.created_at is not None
        assert stored.updated_at == stored.created_at

    async def test_round_trip(self, any_store):
        event = _make_event(
            title="Design review",
            location="Room 4",
            description="Quarterly",
            notes="Bring slides",
            attendees=["a@example.com", "b@example.com"],
            timezone="Europe/Berlin",
            key="ref-1",
        )
        stored = await any_store.add(event)
        fetched = await any_store.get(stored.id)
        assert fetched.title == "Design review"
        assert fetched.start == event.start
        assert fetched.end == event.end
        assert fetched.location == "Room 4"
        assert fetched.description == "Quarterly"
        assert fetched.notes == "Bring slides"
        assert fetched.attendees == ["a@example.com", "b@example.com"]
        assert fetched.timezone == "Europe/Berlin"
        assert fetched.client_reference_id == "ref-1"

    async def test_get_missing(self, any_store):
        assert await any_store.get(999) is None
        assert await any_store.get_by_key("nope") is None

    async def test_get_by_key(self, any_store):
        stored = await any_store.add(_make_event(key="abc"))
        fetched = await any_store.get_by_key("abc")
        assert fetched.id == stored.id

    async def test_duplicate_key_rejected(self, any_store):
        await any_store.add(_make_event(key="abc"))
        with pytest.raises(StoreError):
            await any_store.add(_make_event(title="Other", key="abc"))
        assert len(await any_store.list_all()) == 1

    async def test_returned_events_are_copies(self, memory_store):
        stored = await memory_store.add(_make_event())
        stored.title = "Mutated"
        stored.attendees.append("x@example.com")
        fetched = await memory_store.get(stored.id)
        assert fetched.title == "Team Meeting"
        assert fetched.attendees == []


class TestUpdateAndDelete:
    async def test_update_bumps_updated_at(self, any_store):
        stored = await any_store.add(_make_event())
        stored.title = "Renamed"
        updated = await any_store.update(stored)
        assert updated.title == "Renamed"
        assert updated.created_at == stored.created_at
        assert updated.updated_at >= stored.created_at

    async def test_update_missing_raises(self, any_store):
        ghost = _make_event()
        ghost.id = 42
        with pytest.raises(StoreError):
            await any_store.update(ghost)

    async def test_delete(self, any_store):
        stored = await any_store.add(_make_event(key="k"))
        assert await any_store.delete(stored.id) is True
        assert await any_store.get(stored.id) is None
        assert await any_store.get_by_key("k") is None
        assert await any_store.delete(stored.id) is False


class TestUpsertByKey:
    async def test_creates_then_overwrites(self, any_store):
        first, created = await any_store.upsert_by_key(_make_event(title="A", key="abc"))
        assert created is True
        second, created = await any_store.upsert_by_key(
            _make_event(title="B", key="abc", location="Lab")
        )
        assert created is False
        assert second.id == first.id
        assert second.title == "B"
        assert second.location == "Lab"
        assert second.created_at == first.created_at
        events = await any_store.list_all()
        assert [e.title for e in events] == ["B"]

    async def test_concurrent_upserts_converge(self, any_store):
        results = await asyncio.gather(*[
            any_store.upsert_by_key(_make_event(title=f"T{i}", key="same"))
            for i in range(10)
        ])
        assert sum(1 for _, created in results if created) == 1
        assert len({event.id for event, _ in results}) == 1
        assert len(await any_store.list_all()) == 1

    async def test_requires_key(self, any_store):
        with pytest.raises(StoreError):
            await any_store.upsert_by_key(_make_event())


class TestListRange:
    async def _seed(self, store):
        base = datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc)
        await store.add(_make_event("Third", base + timedelta(days=2)))
        await store.add(_make_event("First", base))
        await store.add(_make_event("Second", base + timedelta(days=1)))
        return base

    async def test_unfiltered_is_ordered_by_start(self, any_store):
        await self._seed(any_store)
        events = await any_store.list_range()
        assert [e.title for e in events] == ["First", "Second", "Third"]

    async def test_list_all_returns_everything(self, any_store):
        await self._seed(any_store)
        assert len(await any_store.list_all()) == 3

    async def test_start_and_end_bounds(self, any_store):
        base = await self._seed(any_store)
        events = await any_store.list_range(
            start=base + timedelta(hours=12),
            end=base + timedelta(days=1, hours=1),
        )
        assert [e.title for e in events] == ["Second"]

    async def test_limit(self, any_store):
        await self._seed(any_store)
        events = await any_store.list_range(limit=2)
        assert [e.title for e in events] == ["First", "Second"]


class TestSQLiteStore:
    async def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "events.db")
        store = SQLiteEventStore(path)
        stored = await store.add(_make_event(key="keep", attendees=["a@example.com"]))
        await store.close()

        reopened = SQLiteEventStore(path)
        fetched = await reopened.get_by_key("keep")
        assert fetched.id == stored.id
        assert fetched.start == stored.start
        assert fetched.start.tzinfo is not None
        assert fetched.attendees == ["a@example.com"]
        await reopened.close()

    async def test_close_twice(self, tmp_path):
        store = SQLiteEventStore(str(tmp_path / "events.db"))
        await store.add(_make_event())
        await store.close()
        await store.close()

    async def test_close_before_first_use(self):
        store = SQLiteEventStore()
        await store.close()

    async def test_duplicate_key_on_add(self, tmp_path):
        store = SQLiteEventStore(str(tmp_path / "events.db"))
        await store.add(_make_event(key="dup"))
        with pytest.raises(StoreError):
            await store.add(_make_event(key="dup"))
        await store.close()
