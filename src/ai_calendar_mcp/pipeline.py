"""Natural-language request processing: classify, validate, route."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .classifier import IntentClassifier
from .router import CommandRouter
from .validator import validate

logger = logging.getLogger("ai-calendar-mcp")

INTERNAL_ERROR_MESSAGE = "An internal error occurred while processing your request"

# HTTP-equivalent status per failure code of an operation envelope
_FAILURE_STATUS = {
    "validation": 400,
    "unsupported": 400,
    "not_found": 404,
    "internal": 500,
}


@dataclass
class CommandResponse:
    status: int
    body: dict[str, Any]

    @property
    def success(self) -> bool:
        return bool(self.body.get("success"))

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, **self.body}


class CommandPipeline:
    def __init__(self, classifier: IntentClassifier, router: CommandRouter):
        self._classifier = classifier
        self._router = router

    async def process(self, prompt: str) -> CommandResponse:
        if not prompt or not prompt.strip():
            return CommandResponse(400, {"success": False, "error": "Prompt is required"})

        try:
            return await self._process(prompt.strip())
        except Exception:
            logger.exception("Error processing natural language request")
            return CommandResponse(500, {"success": False, "error": INTERNAL_ERROR_MESSAGE})

    async def _process(self, prompt: str) -> CommandResponse:
        logger.info("Processing natural language request: %s", prompt)

        classification = await self._classifier.classify(prompt)
        logger.info(
            "Classification result - intent: %s, confidence: %s, tool: %s, source: %s",
            classification.intent, classification.confidence,
            classification.tool_to_call, classification.source,
        )

        validation = validate(classification)
        if not validation.ok:
            logger.info("Missing fields: %s", validation.missing_fields)
            return CommandResponse(400, validation.to_dict())

        envelope = await self._router.route(classification)
        llm_output = classification.to_dict()

        if not envelope.ok:
            logger.error("Tool call failed: %s", envelope.error)
            return CommandResponse(
                _FAILURE_STATUS.get(envelope.code, 500),
                {
                    "success": False,
                    "error": envelope.error,
                    "llm_output": llm_output,
                    "mcp_call": classification.tool_to_call,
                },
            )

        result = envelope.data.to_dict() if envelope.data is not None else None
        logger.info(
            "Successfully processed natural language request. DB ID: %s",
            (result or {}).get("id", "unknown"),
        )
        return CommandResponse(
            200,
            {
                "success": True,
                "result": result,
                "logs": {
                    "llm_output": llm_output,
                    "mcp_call": classification.tool_to_call,
                    "db_operation": envelope.to_dict(),
                },
            },
        )
