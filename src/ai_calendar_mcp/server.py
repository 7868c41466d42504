#!/usr/bin/env python3
"""
ai-calendar-mcp: natural-language calendar MCP server.

Requests in plain language are classified by a language model (with a
keyword fallback), validated and routed to idempotent calendar operations.
Structured create/read/update/delete/list tools are exposed alongside.

Environment variables:
    AI_CALENDAR_CONFIG: path to the YAML config (default: /config/ai_calendar.yaml)
"""

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from .app import CalendarApp, build_app
from .config import load_config
from .exceptions import problem_details
from .models import Event, parse_datetime
from .service import CreateEventRequest, UpdateEventRequest

# MCP stdio servers must NEVER write to stdout; log to stderr only.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("ai-calendar-mcp")


# ---------------------------------------------------------------------------
# Application lifecycle
# ---------------------------------------------------------------------------

@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[CalendarApp]:
    """Build the application at startup and release it at shutdown."""
    settings = load_config()
    app = build_app(settings)
    logger.info(
        "Calendar ready: store=%s, model=%s (%s), llm %s",
        settings.store.backend, settings.llm.model, settings.llm.base_url,
        "enabled" if settings.llm.enabled else "disabled",
    )
    try:
        yield app
    finally:
        await app.close()


def _get_app(ctx: Context) -> CalendarApp:
    return ctx.request_context.lifespan_context


def _event_to_dict(event: Event) -> dict[str, Any]:
    """Convert Event to the structured API shape."""
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "start_time": event.start.isoformat(),
        "end_time": event.end.isoformat(),
        "location": event.location,
    }


def _error(exc: BaseException) -> dict[str, Any]:
    problem = problem_details(exc)
    return {"error": problem["detail"], **problem}


# ---------------------------------------------------------------------------
# MCP Server + Tools
# ---------------------------------------------------------------------------

mcp = FastMCP("ai-calendar", lifespan=app_lifespan)


@mcp.tool()
async def process_request(ctx: Context, prompt: str) -> dict:
    """Carry out a calendar request written in plain language.

    Examples: "Schedule a dentist appointment tomorrow at 3pm",
    "Cancel the meeting with reference abc-123", "Show my events next week".

    Args:
        prompt: The request text.
    """
    response = await _get_app(ctx).pipeline.process(prompt)
    return response.to_dict()


@mcp.tool()
async def call_tool(ctx: Context, tool_name: str, parameters: dict | None = None) -> dict:
    """Invoke a calendar operation directly, bypassing classification.

    Args:
        tool_name: One of calendar.save_event, calendar.update_event,
            calendar.cancel_event, calendar.list_events.
        parameters: Operation parameters (e.g. title, start, end, client_reference_id).
    """
    envelope = await _get_app(ctx).executor.call_tool(tool_name, parameters or {})
    return envelope.to_dict()


@mcp.tool()
async def create_event(
    ctx: Context,
    title: str,
    start: str,
    end: str,
    location: str = "",
    description: str = "",
) -> dict:
    """Create a new calendar event.

    Args:
        title: Event title (max 200 characters)
        start: Start date/time (ISO 8601, e.g. "2026-02-14T14:00:00Z")
        end: End date/time (ISO 8601), must be after start
        location: Event location (optional, max 300 characters)
        description: Event description (optional, max 1000 characters)
    """
    try:
        dt_start = parse_datetime(start)
    except (ValueError, OverflowError):
        return {"error": f"Invalid start date: {start}", "status": 400}
    try:
        dt_end = parse_datetime(end)
    except (ValueError, OverflowError):
        return {"error": f"Invalid end date: {end}", "status": 400}

    request = CreateEventRequest(
        title=title,
        start_time=dt_start,
        end_time=dt_end,
        location=location or None,
        description=description or None,
    )
    try:
        event = await _get_app(ctx).service.create_event(request)
    except Exception as e:
        return _error(e)
    return {"success": True, "status": 201, "event": _event_to_dict(event)}


@mcp.tool()
async def get_event(ctx: Context, event_id: int) -> dict:
    """Get a single event with full details.

    Args:
        event_id: Numeric event ID
    """
    try:
        event = await _get_app(ctx).service.get_event(event_id)
    except Exception as e:
        return _error(e)
    return {"status": 200, "event": event.to_dict()}


@mcp.tool()
async def update_event(
    ctx: Context,
    event_id: int,
    title: str = "",
    start: str = "",
    end: str = "",
    location: str = "",
    description: str = "",
) -> dict:
    """Update an existing event. Only provided fields are changed.

    Args:
        event_id: Numeric event ID
        title: New title (optional)
        start: New start date/time (optional)
        end: New end date/time (optional)
        location: New location (optional)
        description: New description (optional)
    """
    request = UpdateEventRequest(id=event_id)
    if title:
        request.title = title
    if start:
        try:
            request.start_time = parse_datetime(start)
        except (ValueError, OverflowError):
            return {"error": f"Invalid start date: {start}", "status": 400}
    if end:
        try:
            request.end_time = parse_datetime(end)
        except (ValueError, OverflowError):
            return {"error": f"Invalid end date: {end}", "status": 400}
    if location:
        request.location = location
    if description:
        request.description = description

    try:
        event = await _get_app(ctx).service.update_event(request)
    except Exception as e:
        return _error(e)
    return {"success": True, "status": 200, "event": _event_to_dict(event)}


@mcp.tool()
async def delete_event(ctx: Context, event_id: int) -> dict:
    """Delete an event.

    Args:
        event_id: Numeric event ID
    """
    try:
        await _get_app(ctx).service.delete_event(event_id)
    except Exception as e:
        return _error(e)
    return {"success": True, "status": 204, "message": f"Event {event_id} deleted"}


@mcp.tool()
async def list_events(ctx: Context, start: str = "", end: str = "", limit: int = 0) -> dict:
    """List events, optionally restricted to a date range.

    Args:
        start: Only events starting at or after this date/time (ISO 8601, optional)
        end: Only events ending at or before this date/time (ISO 8601, optional)
        limit: Maximum number of events, 0 = no limit
    """
    dt_start = dt_end = None
    if start:
        try:
            dt_start = parse_datetime(start)
        except (ValueError, OverflowError):
            return {"error": f"Invalid start date: {start}", "status": 400}
    if end:
        try:
            dt_end = parse_datetime(end)
        except (ValueError, OverflowError):
            return {"error": f"Invalid end date: {end}", "status": 400}

    try:
        events = await _get_app(ctx).service.list_events(dt_start, dt_end, limit or None)
    except Exception as e:
        return _error(e)
    return {
        "status": 200,
        "count": len(events),
        "events": [_event_to_dict(e) for e in events],
    }


@mcp.tool()
async def llm_diagnostics(ctx: Context, prompt: str = "") -> dict:
    """Check that the configured language model answers.

    Args:
        prompt: Prompt to send (optional, a fixed probe is used by default)
    """
    return await _get_app(ctx).chat.diagnose(prompt or None)


# ---------------------------------------------------------------------------
# Model connectivity CLI helper
# ---------------------------------------------------------------------------

async def _run_diagnostics() -> dict[str, Any]:
    app = build_app(load_config())
    try:
        return await app.chat.diagnose()
    finally:
        await app.close()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Entry point for console script and python -m."""
    # Handle --check-llm flag: probe the model and exit
    if "--check-llm" in sys.argv:
        result = asyncio.run(_run_diagnostics())
        print(json.dumps(result, indent=2), file=sys.stderr)
        sys.exit(0 if result["success"] else 1)

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
