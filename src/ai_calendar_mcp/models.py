"""Event, classification and operation result types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Literal, Union

from dateutil.parser import parse as parse_dt

TITLE_MAX_LENGTH = 200
LOCATION_MAX_LENGTH = 300
DESCRIPTION_MAX_LENGTH = 1000

INTENTS = ("create", "update", "cancel", "list")

SAVE_EVENT = "calendar.save_event"
UPDATE_EVENT = "calendar.update_event"
CANCEL_EVENT = "calendar.cancel_event"
LIST_EVENTS = "calendar.list_events"

INTENT_TO_TOOL = {
    "create": SAVE_EVENT,
    "update": UPDATE_EVENT,
    "cancel": CANCEL_EVENT,
    "list": LIST_EVENTS,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: str) -> datetime:
    """Parse an ISO 8601 string into an aware UTC datetime.

    Naive values are taken to be UTC already.
    """
    return to_utc(parse_dt(value))


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_utc(value: datetime) -> str:
    """Serialize as ``yyyy-MM-ddTHH:mm:ssZ``."""
    return to_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Persisted entity
# ---------------------------------------------------------------------------

@dataclass
class Event:
    """A stored calendar event."""

    title: str
    start: datetime
    end: datetime
    id: int | None = None  # assigned by the store
    timezone: str = "UTC"
    location: str | None = None
    description: str | None = None
    notes: str | None = None
    attendees: list[str] = field(default_factory=list)
    client_reference_id: str | None = None  # idempotency key
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def copy(self) -> Event:
        return replace(self, attendees=list(self.attendees))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "start": format_utc(self.start),
            "end": format_utc(self.end),
            "timezone": self.timezone,
            "location": self.location,
            "description": self.description,
            "notes": self.notes,
            "attendees": list(self.attendees),
            "client_reference_id": self.client_reference_id,
            "created_at": format_utc(self.created_at) if self.created_at else None,
            "updated_at": format_utc(self.updated_at) if self.updated_at else None,
        }

    def summary(self) -> dict[str, Any]:
        """The listing shape used by ``calendar.list_events``."""
        return {
            "id": self.id,
            "title": self.title,
            "start": format_utc(self.start),
            "end": format_utc(self.end),
            "timezone": self.timezone,
            "location": self.location,
            "client_reference_id": self.client_reference_id,
        }


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

@dataclass
class ExtractedEvent:
    """Candidate event fields pulled out of a natural-language request."""

    title: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    timezone: str | None = None
    location: str | None = None
    attendees: list[str] = field(default_factory=list)
    notes: str | None = None
    client_reference_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["start"] = format_utc(self.start) if self.start else None
        data["end"] = format_utc(self.end) if self.end else None
        return data


@dataclass
class ClassificationResult:
    intent: str
    confidence: float
    extracted_event: ExtractedEvent | None
    missing_fields: list[str]
    tool_to_call: str
    source: Literal["model", "fallback"] = "model"

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "confidence": self.confidence,
            "extracted_event": self.extracted_event.to_dict() if self.extracted_event else None,
            "missing_fields": list(self.missing_fields),
            "tool_to_call": self.tool_to_call,
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------

@dataclass
class SavedEvent:
    id: int
    title: str
    start: str
    end: str
    timezone: str
    location: str | None
    client_reference_id: str | None
    created: bool
    kind: str = field(default="saved", init=False)

    @classmethod
    def from_event(cls, event: Event, created: bool) -> SavedEvent:
        return cls(
            id=event.id,
            title=event.title,
            start=format_utc(event.start),
            end=format_utc(event.end),
            timezone=event.timezone,
            location=event.location,
            client_reference_id=event.client_reference_id,
            created=created,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class UpdatedEvent:
    id: int
    kind: str = field(default="updated", init=False)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CancelledEvent:
    id: int
    deleted: bool = True
    kind: str = field(default="cancelled", init=False)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class EventList:
    events: list[dict[str, Any]]
    kind: str = field(default="event_list", init=False)

    @property
    def count(self) -> int:
        return len(self.events)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "count": self.count, "events": list(self.events)}


OperationData = Union[SavedEvent, UpdatedEvent, CancelledEvent, EventList]


@dataclass
class OperationEnvelope:
    """Uniform ``{ok, data, error}`` result of every calendar operation."""

    ok: bool
    data: OperationData | None = None
    error: str | None = None
    code: str | None = None  # validation | not_found | unsupported | internal

    @classmethod
    def success(cls, data: OperationData) -> OperationEnvelope:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str, code: str) -> OperationEnvelope:
        return cls(ok=False, error=error, code=code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "data": self.data.to_dict() if self.data is not None else None,
            "error": self.error,
        }
