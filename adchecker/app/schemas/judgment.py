"""
Judgment schema.

A judgment result is the structured outcome of evaluating one unit
(a scene or a checklist item) against an uploaded document. Two shapes
exist and are unified under a ``kind`` discriminator:

- appropriateness: a scene judged appropriate or not, with confidence
- compliance: a checklist item judged OK / NG / needs review

Results are created once per completed check and are never mutated.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from adchecker.app.schemas.catalog import (
    AdType,
    ChecklistItem,
    Scene,
    scene_label,
)


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------


class ComplianceStatus(str, Enum):
    """
    Tri-state compliance status.

    Wire values are the labels the model is instructed to emit.
    """

    OK = "OK"
    NG = "NG"
    NEEDS_REVIEW = "要確認"


# ---------------------------------------------------------------------------
# Judgment results
# ---------------------------------------------------------------------------


class AppropriatenessResult(BaseModel):
    """
    Binary appropriateness of a document for one scene.
    """

    kind: Literal["appropriateness"] = "appropriateness"

    scene: Scene = Field(
        ...,
        description="Scene the document was judged against",
    )

    is_appropriate: bool = Field(
        ...,
        description="Whether the document satisfies the scene criteria",
    )

    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Model confidence in the judgment",
    )

    reason: str = Field(
        ...,
        description="Explanation of the judgment",
    )

    suggestions: Tuple[str, ...] = Field(
        (),
        description="Ordered improvement suggestions",
    )

    synthetic: bool = Field(
        False,
        description=(
            "True when the result was recorded by the batch runner in "
            "place of a failed check"
        ),
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def label(self) -> str:
        return scene_label(self.scene)

    @property
    def verdict(self) -> str:
        return "適切" if self.is_appropriate else "要改善"

    @property
    def detail(self) -> str:
        return self.reason


class ComplianceResult(BaseModel):
    """
    Tri-state compliance of a document for one checklist item.
    """

    kind: Literal["compliance"] = "compliance"

    item: ChecklistItem = Field(
        ...,
        description="Checklist item the result is bound to",
    )

    status: ComplianceStatus

    detail: str = Field(
        ...,
        description="Explanation of the judgment",
    )

    location: Optional[str] = Field(
        None,
        description="Where in the document the issue was found",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def label(self) -> str:
        return self.item.check_item

    @property
    def verdict(self) -> str:
        return self.status.value


JudgmentResult = Annotated[
    Union[AppropriatenessResult, ComplianceResult],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Type detection
# ---------------------------------------------------------------------------


class TypeDetection(BaseModel):
    """Detected advertisement type, pending user confirmation."""

    detected_type: AdType
    confidence: float = Field(..., ge=0.0, le=1.0)
    summary: str

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


class JudgmentSummary(BaseModel):
    """
    Aggregate counts over a sequence of judgment results.

    Derived, read-only.
    """

    total: int = 0
    appropriate: int = 0
    not_appropriate: int = 0
    synthetic_failures: int = 0
    ok: int = 0
    ng: int = 0
    needs_review: int = 0

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_results(
        cls,
        results: Sequence[Union[AppropriatenessResult, ComplianceResult]],
    ) -> "JudgmentSummary":
        counts = {
            "appropriate": 0,
            "not_appropriate": 0,
            "synthetic_failures": 0,
            "ok": 0,
            "ng": 0,
            "needs_review": 0,
        }

        for result in results:
            if isinstance(result, AppropriatenessResult):
                if result.is_appropriate:
                    counts["appropriate"] += 1
                else:
                    counts["not_appropriate"] += 1
                if result.synthetic:
                    counts["synthetic_failures"] += 1
            elif result.status == ComplianceStatus.OK:
                counts["ok"] += 1
            elif result.status == ComplianceStatus.NG:
                counts["ng"] += 1
            else:
                counts["needs_review"] += 1

        return cls(total=len(results), **counts)


class BatchProgress(BaseModel):
    """
    Progress of an in-flight batch run.

    Emitted after every item, successful or not.
    """

    total: int = Field(..., ge=0)
    completed_count: int = Field(..., ge=0)
    current_index: Optional[int] = Field(
        None,
        description="Index of the item just processed",
    )
    current_unit: Optional[Scene] = None
    results_so_far: List[AppropriatenessResult] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def done(self) -> bool:
        return self.completed_count >= self.total
