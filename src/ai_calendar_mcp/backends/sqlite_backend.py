"""SQLite event store (file or ``:memory:``) on async SQLAlchemy + aiosqlite."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..exceptions import StoreError
from ..models import DESCRIPTION_MAX_LENGTH, LOCATION_MAX_LENGTH, TITLE_MAX_LENGTH, Event, to_utc, utcnow

logger = logging.getLogger("ai-calendar-mcp")

# SQLite INTEGER is a signed 64-bit value
MAX_ROW_ID = 2**63 - 1


class Base(DeclarativeBase):
    pass


class EventRow(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    location: Mapped[Optional[str]] = mapped_column(String(LOCATION_MAX_LENGTH))
    description: Mapped[Optional[str]] = mapped_column(String(DESCRIPTION_MAX_LENGTH))
    attendees: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    client_reference_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# Columns an upsert overwrites; id, key and created_at are kept
_UPSERT_COLUMNS = (
    "title", "start_time", "end_time", "timezone", "location",
    "description", "attendees", "notes", "updated_at",
)


def _naive(value: datetime) -> datetime:
    # SQLite has no zone-aware type; everything is stored as naive UTC
    return to_utc(value).replace(tzinfo=None)


def _aware(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


def _row_values(event: Event) -> dict[str, Any]:
    return {
        "title": event.title,
        "start_time": _naive(event.start),
        "end_time": _naive(event.end),
        "timezone": event.timezone or "UTC",
        "location": event.location,
        "description": event.description,
        "attendees": list(event.attendees),
        "notes": event.notes,
        "client_reference_id": event.client_reference_id,
    }


def _row_to_event(row: EventRow) -> Event:
    return Event(
        id=row.id,
        title=row.title,
        start=_aware(row.start_time),
        end=_aware(row.end_time),
        timezone=row.timezone,
        location=row.location,
        description=row.description,
        attendees=list(row.attendees or []),
        notes=row.notes,
        client_reference_id=row.client_reference_id,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _storable_id(event_id: int) -> bool:
    return 0 < event_id <= MAX_ROW_ID


class SQLiteEventStore:
    """Event store backed by SQLite through an async SQLAlchemy engine.

    The schema is created on first use. Upserts go through
    ``INSERT ... ON CONFLICT(client_reference_id) DO UPDATE``.
    """

    def __init__(self, path: str = ":memory:"):
        self._path = path
        self._engine: AsyncEngine = create_async_engine(f"sqlite+aiosqlite:///{path}")
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()
        self._upsert_lock = asyncio.Lock()

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._schema_lock:
            if self._schema_ready:
                return
            try:
                async with self._engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
            self._schema_ready = True
            logger.info("SQLite store opened: %s", self._path)

    async def _session(self) -> AsyncSession:
        await self._ensure_schema()
        return self._session_factory()

    async def add(self, event: Event) -> Event:
        now = _naive(utcnow())
        row = EventRow(**_row_values(event), created_at=now, updated_at=now)
        try:
            async with await self._session() as session, session.begin():
                session.add(row)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return _row_to_event(row)

    async def get(self, event_id: int) -> Event | None:
        if not _storable_id(event_id):
            return None
        try:
            async with await self._session() as session:
                row = await session.get(EventRow, event_id)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return _row_to_event(row) if row else None

    async def get_by_key(self, client_reference_id: str) -> Event | None:
        try:
            async with await self._session() as session:
                row = await session.scalar(
                    select(EventRow).where(EventRow.client_reference_id == client_reference_id)
                )
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return _row_to_event(row) if row else None

    async def update(self, event: Event) -> Event:
        if event.id is None or not _storable_id(event.id):
            raise StoreError(f"Event {event.id} does not exist")
        try:
            async with await self._session() as session, session.begin():
                row = await session.get(EventRow, event.id)
                if row is None:
                    raise StoreError(f"Event {event.id} does not exist")
                for name, value in _row_values(event).items():
                    setattr(row, name, value)
                row.updated_at = _naive(utcnow())
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return _row_to_event(row)

    async def delete(self, event_id: int) -> bool:
        if not _storable_id(event_id):
            return False
        try:
            async with await self._session() as session, session.begin():
                result = await session.execute(delete(EventRow).where(EventRow.id == event_id))
                deleted = result.rowcount > 0
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return deleted

    async def _select(self, stmt) -> list[Event]:
        try:
            async with await self._session() as session:
                rows = (await session.scalars(stmt)).all()
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return [_row_to_event(row) for row in rows]

    async def list_all(self) -> list[Event]:
        return await self._select(select(EventRow).order_by(EventRow.id))

    async def list_range(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        stmt = select(EventRow)
        if start is not None:
            stmt = stmt.where(EventRow.start_time >= _naive(start))
        if end is not None:
            stmt = stmt.where(EventRow.end_time <= _naive(end))
        stmt = stmt.order_by(EventRow.start_time, EventRow.id)
        if limit:
            stmt = stmt.limit(limit)
        return await self._select(stmt)

    async def upsert_by_key(self, event: Event) -> tuple[Event, bool]:
        key = event.client_reference_id
        if not key:
            raise StoreError("upsert_by_key requires a client_reference_id")

        now = _naive(utcnow())
        stmt = sqlite_insert(EventRow).values(**_row_values(event), created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[EventRow.client_reference_id],
            set_={name: stmt.excluded[name] for name in _UPSERT_COLUMNS},
        )
        # Serializes in-process callers so the created flag is exact
        async with self._upsert_lock:
            try:
                async with await self._session() as session, session.begin():
                    existing = await session.scalar(
                        select(EventRow.id).where(EventRow.client_reference_id == key)
                    )
                    await session.execute(stmt)
                    row = await session.scalar(
                        select(EventRow).where(EventRow.client_reference_id == key)
                    )
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
        return _row_to_event(row), existing is None

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("SQLite store closed: %s", self._path)
