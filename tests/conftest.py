"""Shared fixtures."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from ai_calendar_mcp.backends.memory import MemoryEventStore
from ai_calendar_mcp.backends.sqlite_backend import SQLiteEventStore
from ai_calendar_mcp.llm import ChatOutcome

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
async def memory_store():
    store = MemoryEventStore()
    yield store
    await store.close()


@pytest.fixture(params=["memory", "sqlite"])
async def any_store(request, tmp_path):
    """Every store backend, so behaviour is checked against both."""
    if request.param == "memory":
        store = MemoryEventStore()
    else:
        store = SQLiteEventStore(str(tmp_path / "events.db"))
    yield store
    await store.close()


@pytest.fixture
def offline_chat():
    """A chat client whose model is unreachable."""
    chat = AsyncMock()
    chat.complete = AsyncMock(return_value=ChatOutcome(error="request failed: ConnectError"))
    return chat
