"""
Response extraction.

Locates and parses the JSON payload embedded in free-form model output,
and validates parsed payloads against the expected output schema.

IMPORTANT:
- Pure functions. No I/O, no logging, no retries.
- Never raises for malformed model output: every outcome is normalized
  into an ExtractionResult.
- JSON repair is NOT attempted. A payload that does not parse as-is is
  reported as INVALID_JSON.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError


Shape = Literal["object", "array"]

_DELIMITERS = {
    "object": ("{", "}"),
    "array": ("[", "]"),
}


class ExtractionErrorKind(str, Enum):
    """Classified extraction failure."""

    NO_MATCH = "no_match"
    INVALID_JSON = "invalid_json"
    SCHEMA_MISMATCH = "schema_mismatch"


class ExtractionResult(BaseModel):
    """
    Tagged result of an extraction or validation step.

    Exactly one of ``value`` (success) or ``error`` (failure) is meaningful.
    """

    success: bool
    value: Any = None
    error: Optional[ExtractionErrorKind] = None
    raw_error: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def ok(cls, value: Any) -> "ExtractionResult":
        return cls(success=True, value=value)

    @classmethod
    def fail(
        cls,
        error: ExtractionErrorKind,
        raw_error: Optional[str] = None,
    ) -> "ExtractionResult":
        return cls(success=False, error=error, raw_error=raw_error)


# ----------------------------------------------------------------------
# Extraction
# ----------------------------------------------------------------------


def locate_span(raw_text: str, shape: Shape) -> Optional[str]:
    """
    Return the span from the first opening delimiter to the last closing
    delimiter of the requested shape, or None if there is no such span.
    """
    opening, closing = _DELIMITERS[shape]

    start = raw_text.find(opening)
    if start == -1:
        return None

    end = raw_text.rfind(closing)
    if end < start:
        return None

    return raw_text[start:end + 1]


def extract(raw_text: str, shape: Shape) -> ExtractionResult:
    """
    Locate and strictly parse the dominant JSON span of ``raw_text``.

    Semantic validation is NOT performed here; see ``validate_object``
    and ``validate_array``.
    """
    span = locate_span(raw_text or "", shape)
    if span is None:
        return ExtractionResult.fail(
            ExtractionErrorKind.NO_MATCH,
            f"No JSON {shape} found in model output",
        )

    try:
        value = json.loads(span)
    except json.JSONDecodeError as exc:
        return ExtractionResult.fail(
            ExtractionErrorKind.INVALID_JSON,
            str(exc),
        )

    return ExtractionResult.ok(value)


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------


def validate_object(
    value: Any,
    schema: Type[BaseModel],
) -> ExtractionResult:
    """
    Validate a parsed JSON object against an output schema.
    """
    if not isinstance(value, dict):
        return ExtractionResult.fail(
            ExtractionErrorKind.SCHEMA_MISMATCH,
            f"Expected a JSON object, got {type(value).__name__}",
        )

    try:
        return ExtractionResult.ok(schema.model_validate(value))
    except PydanticValidationError as exc:
        return ExtractionResult.fail(
            ExtractionErrorKind.SCHEMA_MISMATCH,
            _describe_validation_error(exc),
        )


def validate_array(
    value: Any,
    element_schema: Type[BaseModel],
) -> ExtractionResult:
    """
    Validate a parsed JSON array element-by-element.

    The whole array fails if any element fails.
    """
    if not isinstance(value, list):
        return ExtractionResult.fail(
            ExtractionErrorKind.SCHEMA_MISMATCH,
            f"Expected a JSON array, got {type(value).__name__}",
        )

    elements: List[BaseModel] = []
    for position, element in enumerate(value):
        result = validate_object(element, element_schema)
        if not result.success:
            return ExtractionResult.fail(
                ExtractionErrorKind.SCHEMA_MISMATCH,
                f"element {position}: {result.raw_error}",
            )
        elements.append(result.value)

    return ExtractionResult.ok(elements)


def extract_object(raw_text: str, schema: Type[BaseModel]) -> ExtractionResult:
    """Extract a JSON object and validate it in one step."""
    extracted = extract(raw_text, "object")
    if not extracted.success:
        return extracted
    return validate_object(extracted.value, schema)


def extract_array(
    raw_text: str,
    element_schema: Type[BaseModel],
) -> ExtractionResult:
    """Extract a JSON array and validate every element in one step."""
    extracted = extract(raw_text, "array")
    if not extracted.success:
        return extracted
    return validate_array(extracted.value, element_schema)


def _describe_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ())) or "<root>"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)
