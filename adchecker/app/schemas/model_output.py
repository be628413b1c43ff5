"""
Model output schemas.

These schemas define the JSON payloads the model is instructed to emit
for each JSON-producing prompt kind. Extracted payloads are validated
against them before being bound to catalog records.

IMPORTANT:
- Field names follow the wire format requested in the prompts.
- Validation is strict: wrong types, out-of-range confidence and
  unknown enum values are rejected, never coerced or clamped.
- Unknown extra keys are ignored.
"""

from typing import List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    field_validator,
)

from adchecker.app.schemas.catalog import AdType
from adchecker.app.schemas.judgment import ComplianceStatus


_OUTPUT_MODEL_CONFIG = ConfigDict(extra="ignore", frozen=True)


class TypeDetectionOutput(BaseModel):
    """Payload of the type-detection prompt."""

    detectedType: AdType
    confidence: StrictFloat = Field(..., ge=0.0, le=1.0)
    summary: str

    model_config = _OUTPUT_MODEL_CONFIG


class SceneCheckOutput(BaseModel):
    """Payload of the single-scene check prompt."""

    isAppropriate: StrictBool
    confidence: StrictFloat = Field(..., ge=0.0, le=1.0)
    reason: str
    suggestions: List[str] = Field(default_factory=list)

    model_config = _OUTPUT_MODEL_CONFIG

    @field_validator("suggestions", mode="before")
    @classmethod
    def null_suggestions_are_empty(cls, v: object) -> object:
        return [] if v is None else v


class ChecklistReviewElement(BaseModel):
    """One element of the full-checklist review array."""

    checklistIndex: StrictInt = Field(..., ge=0)
    status: ComplianceStatus
    detail: str
    location: Optional[str] = None

    model_config = _OUTPUT_MODEL_CONFIG

    @field_validator("status", mode="before")
    @classmethod
    def accept_english_review_token(cls, v: object) -> object:
        if v == "NEEDS_REVIEW":
            return ComplianceStatus.NEEDS_REVIEW.value
        return v

    @field_validator("location", mode="before")
    @classmethod
    def blank_location_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v
