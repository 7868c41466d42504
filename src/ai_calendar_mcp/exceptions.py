"""Calendar error taxonomy and its mapping to problem-details payloads."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger("ai-calendar-mcp")


class StoreError(Exception):
    """Raised by event stores when the underlying storage fails."""


class CalendarError(Exception):
    """Base class for domain faults. ``code`` is a stable machine-readable tag."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ValidationError(CalendarError):
    """Field-level, user-correctable failure.

    ``errors`` maps a field name to every message collected for it.
    """

    def __init__(self, message: str, errors: dict[str, list[str]] | None = None):
        super().__init__("VALIDATION_ERROR", message)
        self.errors = errors or {}

    @classmethod
    def for_field(cls, field_name: str, error: str) -> ValidationError:
        return cls(
            f"Validation failed for field '{field_name}': {error}",
            {field_name: [error]},
        )


class EventNotFoundError(CalendarError):
    def __init__(self, event_id: int | str):
        super().__init__("EVENT_NOT_FOUND", f"Event with ID {event_id} was not found")
        self.event_id = event_id


class DatabaseOperationError(CalendarError):
    """A store fault, wrapped. The cause is chained, never shown to callers."""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__("DATABASE_ERROR", f"Database operation '{operation}' failed: {cause}")
        self.operation = operation
        self.__cause__ = cause


class UnsupportedOperationError(CalendarError):
    def __init__(self, tool_name: str):
        super().__init__("UNSUPPORTED_OPERATION", f"Unknown or unsupported tool: {tool_name}")
        self.tool_name = tool_name


def _problem(
    title: str,
    detail: str,
    status: int,
    error_code: str,
    details: Any = None,
) -> dict[str, Any]:
    problem: dict[str, Any] = {
        "title": title,
        "detail": detail,
        "status": status,
        "type": f"https://httpstatuses.com/{status}",
        "error_code": error_code,
    }
    if details is not None:
        problem["details"] = details
    return problem


def problem_details(exc: BaseException) -> dict[str, Any]:
    """Translate an exception into a JSON-friendly problem description."""
    if isinstance(exc, ValidationError):
        return _problem("Validation Error", exc.message, 400, exc.code, exc.errors)
    if isinstance(exc, EventNotFoundError):
        return _problem("Event Not Found", exc.message, 404, exc.code, {"event_id": exc.event_id})
    if isinstance(exc, DatabaseOperationError):
        return _problem(
            "Database Operation Failed",
            "A database error occurred while processing the request",
            500,
            exc.code,
            {"operation": exc.operation},
        )
    if isinstance(exc, CalendarError):
        return _problem("Calendar Operation Error", exc.message, 400, exc.code)

    logger.error("Unhandled error: %s", exc, exc_info=exc)
    return _problem(
        "Internal Server Error",
        "An unexpected error occurred while processing the request",
        500,
        "INTERNAL_ERROR",
    )
