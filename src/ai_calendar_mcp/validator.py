"""Required-field checks on a classification before anything is executed."""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import ClassificationResult

MISSING_FIELDS_ERROR = "Missing required information"
MISSING_FIELDS_SUGGESTION = "Please provide the missing information to complete your request"

# Fields the extracted event must carry for each intent.
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "create": ("title", "start", "end"),
    "update": (),
    "cancel": (),
    "list": (),
}


@dataclass
class ValidationOutcome:
    missing_fields: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing_fields

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": MISSING_FIELDS_ERROR,
            "missing_fields": list(self.missing_fields),
            "suggestion": MISSING_FIELDS_SUGGESTION,
        }


def validate(result: ClassificationResult) -> ValidationOutcome:
    """Collect missing fields: those the classifier reported plus the
    intent's required fields absent from the extracted event."""
    missing: list[str] = []
    for name in result.missing_fields:
        if name and name not in missing:
            missing.append(name)

    event = result.extracted_event
    for name in REQUIRED_FIELDS.get(result.intent, ()):
        value = getattr(event, name, None) if event is not None else None
        if (value is None or value == "") and name not in missing:
            missing.append(name)

    return ValidationOutcome(missing_fields=missing)
