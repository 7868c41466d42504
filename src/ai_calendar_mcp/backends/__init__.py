"""Event store backends."""

from __future__ import annotations

from ..config import StoreSettings
from .base import EventStore


def create_store(settings: StoreSettings) -> EventStore:
    """Create the store instance selected in config."""
    if settings.backend == "memory":
        from .memory import MemoryEventStore
        return MemoryEventStore()
    elif settings.backend == "sqlite":
        from .sqlite_backend import SQLiteEventStore
        return SQLiteEventStore(settings.path or ":memory:")
    else:
        raise ValueError(f"Unknown store backend: {settings.backend}")


__all__ = ["EventStore", "create_store"]
