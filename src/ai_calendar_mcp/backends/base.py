"""Protocol for event store backends."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from ..models import Event


@runtime_checkable
class EventStore(Protocol):
    """Protocol that all event stores must satisfy.

    Stores assign ``id``, ``created_at`` and ``updated_at``. A non-null
    ``client_reference_id`` is unique across all stored events.
    """

    async def add(self, event: Event) -> Event: ...

    async def get(self, event_id: int) -> Event | None: ...

    async def get_by_key(self, client_reference_id: str) -> Event | None: ...

    async def update(self, event: Event) -> Event: ...

    async def delete(self, event_id: int) -> bool: ...

    async def list_all(self) -> list[Event]: ...

    async def list_range(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]: ...

    async def upsert_by_key(self, event: Event) -> tuple[Event, bool]:
        """Create ``event`` or overwrite the one holding its key, atomically.

        Returns the stored event and whether it was newly created.
        """
        ...

    async def close(self) -> None: ...


def in_range(event: Event, start: datetime | None, end: datetime | None) -> bool:
    """Range filter shared by backends: starts at/after ``start``, ends at/before ``end``."""
    if start is not None and event.start < start:
        return False
    if end is not None and event.end > end:
        return False
    return True
