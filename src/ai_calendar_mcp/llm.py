"""Chat-completions client for an OpenAI-compatible endpoint (Ollama, OpenAI, vLLM)."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from .config import LLMSettings

logger = logging.getLogger("ai-calendar-mcp")

DIAGNOSTIC_PROMPT = "Hello, please respond with exactly: 'REAL_LLM_RESPONSE'"


@dataclass
class ChatOutcome:
    """Result of one model call: either ``text`` or ``error`` is set."""

    text: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.text is not None


def _safe_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            message = error_payload.get("message")
            if isinstance(message, str) and message.strip():
                return " ".join(message.split())[:200]
        if isinstance(error_payload, str) and error_payload.strip():
            return " ".join(error_payload.split())[:200]

    raw_text = response.text.strip()
    if raw_text:
        return " ".join(raw_text.split())[:200]
    return "Request failed without an error payload"


def _extract_text(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, str) and content.strip():
        return content.strip()
    return None


class ChatClient:
    """Sends a system + user message pair and returns the reply text.

    Failures come back as a ``ChatOutcome`` with ``error`` set, never as
    exceptions.
    """

    def __init__(self, settings: LLMSettings, http_client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(settings.timeout))

    @property
    def settings(self) -> LLMSettings:
        return self._settings

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        api_key = self._settings.api_key
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    async def complete(self, system: str | None, user: str) -> ChatOutcome:
        if not self._settings.enabled:
            return ChatOutcome(error="model disabled")

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": user})
        body = {
            "model": self._settings.model,
            "messages": messages,
            "temperature": self._settings.temperature,
            "stream": False,
        }
        url = self._settings.base_url.rstrip("/") + "/chat/completions"

        try:
            response = await self._http_client.post(url, json=body, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("LLM request to %s failed: %s", url, exc)
            return ChatOutcome(error=f"request failed: {exc.__class__.__name__}")
        except Exception as exc:
            # e.g. UnicodeEncodeError for a non-ASCII API key in the headers
            logger.error("LLM request to %s could not be sent: %s", url, exc.__class__.__name__)
            return ChatOutcome(error=f"request failed: {exc.__class__.__name__}")

        if response.status_code < 200 or response.status_code >= 300:
            message = _safe_error_message(response)
            logger.warning("LLM returned HTTP %d: %s", response.status_code, message)
            return ChatOutcome(error=f"HTTP {response.status_code}: {message}")

        try:
            payload = response.json()
        except ValueError:
            return ChatOutcome(error="response body is not JSON")

        text = _extract_text(payload)
        if text is None:
            return ChatOutcome(error="response carries no message content")
        return ChatOutcome(text=text)

    async def diagnose(self, prompt: str | None = None) -> dict[str, Any]:
        """Round-trip a trivial prompt and report what answered and how fast."""
        prompt = prompt or DIAGNOSTIC_PROMPT
        started = time.monotonic()
        outcome = await self.complete(None, prompt)
        duration_ms = (time.monotonic() - started) * 1000

        result: dict[str, Any] = {
            "enabled": self._settings.enabled,
            "base_url": self._settings.base_url,
            "model": self._settings.model,
            "request": prompt,
            "duration_ms": round(duration_ms, 1),
            "success": outcome.ok,
        }
        if outcome.ok:
            result["response"] = outcome.text
        else:
            result["error"] = outcome.error
        logger.info(
            "LLM diagnostics: model=%s success=%s duration=%.1fms",
            self._settings.model, outcome.ok, duration_ms,
        )
        return result

    async def aclose(self) -> None:
        await self._http_client.aclose()
