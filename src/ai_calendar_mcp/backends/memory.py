"""In-process event store."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from itertools import count

from ..exceptions import StoreError
from ..models import Event, utcnow
from .base import in_range

logger = logging.getLogger("ai-calendar-mcp")


class MemoryEventStore:
    """Event store held in a dict, one instance per application.

    All mutations run under a single lock so find-or-create by key is atomic.
    Events handed out are copies.
    """

    def __init__(self):
        self._events: dict[int, Event] = {}
        self._keys: dict[str, int] = {}
        self._ids = count(1)
        self._lock = asyncio.Lock()

    def _insert(self, event: Event) -> Event:
        if event.client_reference_id and event.client_reference_id in self._keys:
            raise StoreError(f"Duplicate client_reference_id: {event.client_reference_id}")
        now = utcnow()
        stored = event.copy()
        stored.id = next(self._ids)
        stored.created_at = now
        stored.updated_at = now
        self._events[stored.id] = stored
        if stored.client_reference_id:
            self._keys[stored.client_reference_id] = stored.id
        return stored.copy()

    def _replace(self, event: Event) -> Event:
        current = self._events.get(event.id)
        if current is None:
            raise StoreError(f"Event {event.id} does not exist")
        key = event.client_reference_id
        if key and self._keys.get(key, event.id) != event.id:
            raise StoreError(f"Duplicate client_reference_id: {key}")

        stored = event.copy()
        stored.created_at = current.created_at
        stored.updated_at = utcnow()
        if current.client_reference_id and current.client_reference_id != key:
            del self._keys[current.client_reference_id]
        if key:
            self._keys[key] = stored.id
        self._events[stored.id] = stored
        return stored.copy()

    async def add(self, event: Event) -> Event:
        async with self._lock:
            return self._insert(event)

    async def get(self, event_id: int) -> Event | None:
        event = self._events.get(event_id)
        return event.copy() if event else None

    async def get_by_key(self, client_reference_id: str) -> Event | None:
        event_id = self._keys.get(client_reference_id)
        if event_id is None:
            return None
        return self._events[event_id].copy()

    async def update(self, event: Event) -> Event:
        async with self._lock:
            return self._replace(event)

    async def delete(self, event_id: int) -> bool:
        async with self._lock:
            event = self._events.pop(event_id, None)
            if event is None:
                return False
            if event.client_reference_id:
                self._keys.pop(event.client_reference_id, None)
            return True

    async def list_all(self) -> list[Event]:
        return [e.copy() for e in self._events.values()]

    async def list_range(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        events = sorted(
            (e for e in self._events.values() if in_range(e, start, end)),
            key=lambda e: e.start,
        )
        if limit:
            events = events[:limit]
        return [e.copy() for e in events]

    async def upsert_by_key(self, event: Event) -> tuple[Event, bool]:
        key = event.client_reference_id
        if not key:
            raise StoreError("upsert_by_key requires a client_reference_id")
        async with self._lock:
            existing_id = self._keys.get(key)
            if existing_id is None:
                return self._insert(event), True
            merged = event.copy()
            merged.id = existing_id
            return self._replace(merged), False

    async def close(self) -> None:
        logger.info("Memory store closed (%d event(s) discarded)", len(self._events))
        self._events.clear()
        self._keys.clear()
