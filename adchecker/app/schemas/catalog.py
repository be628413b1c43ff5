"""
Catalog schema.

Defines the records evaluated by the checker: checklist items (one
regulatory or quality rule each) and scenes (a named subject with
criteria that one image or document is judged against).

Records are owned by the external catalog or by the local scene store.
They are immutable for the lifetime of a session and are referenced,
never copied, by judgment results.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------


class AdType(str, Enum):
    """
    Regulatory category of a real-estate advertisement.

    Values are the exact labels the model is asked to choose from.
    """

    SALE_NEW = "売買（新築）"
    SALE_USED = "売買（中古）"
    LEASE_RESIDENTIAL = "賃貸（居住用）"
    LEASE_COMMERCIAL = "賃貸（事業用）"
    OTHER = "その他"


class Severity(str, Enum):
    """Severity of a checklist item. Ordering is low < medium < high."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
}


class AutoCheck(str, Enum):
    """
    Whether a tabular scene record can be judged by the model.

    Wire values are the spreadsheet markers.
    """

    FULLY_AUTOMATABLE = "○"
    PARTIALLY_AUTOMATABLE = "△"
    HUMAN_ONLY = "×"


_CATALOG_MODEL_CONFIG = ConfigDict(
    frozen=True,
    extra="ignore",
    alias_generator=to_camel,
    populate_by_name=True,
)


# ---------------------------------------------------------------------------
# Checklist item
# ---------------------------------------------------------------------------


class ChecklistItem(BaseModel):
    """
    One compliance rule for a given advertisement type.
    """

    id: str = Field(
        ...,
        description="Stable identifier assigned by the catalog",
    )

    category: str = Field(
        "",
        description="Free-text category (e.g. 表示規約, 価格表示)",
    )

    check_item: str = Field(
        ...,
        min_length=1,
        description="What the advertisement must satisfy",
    )

    regulation: str = Field(
        "",
        description="Regulatory basis or citation",
    )

    severity: Severity = Field(
        Severity.MEDIUM,
        description="Impact of a violation",
    )

    model_config = _CATALOG_MODEL_CONFIG


# ---------------------------------------------------------------------------
# Scenes
# ---------------------------------------------------------------------------


class EvaluationContext(BaseModel):
    """
    Uniform projection of any scene variant, consumed by the prompt builder.
    """

    label: str
    criteria_text: str
    focus: str
    tags: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")


class SimpleScene(BaseModel):
    """A named shooting location with free-text criteria."""

    kind: Literal["simple"] = "simple"

    id: str
    name: str = Field(..., min_length=1)
    description: str = ""
    criteria: str = ""

    model_config = _CATALOG_MODEL_CONFIG

    def to_evaluation_context(self) -> EvaluationContext:
        lines = [f"- シーン名: {self.name}"]
        if self.description:
            lines.append(f"- 説明: {self.description}")
        lines.append(f"- 判定基準: {self.criteria or 'なし'}")

        return EvaluationContext(
            label=self.name,
            criteria_text="\n".join(lines),
            focus=self.criteria or self.name,
        )


class SceneRecord(BaseModel):
    """
    A tabular scene record as delivered by the spreadsheet catalog.

    Columns A..I of the catalog sheet map onto these fields in order.
    """

    kind: Literal["tabular"] = "tabular"

    id: str
    scene_type: str = Field(..., min_length=1)
    sub_scene: str = ""
    project_name: str = ""
    category: str = ""
    check_item: str = Field(..., min_length=1)
    reason: str = ""
    auto_check: AutoCheck = AutoCheck.FULLY_AUTOMATABLE
    object_tags: Tuple[str, ...] = ()
    notes: str = ""

    model_config = _CATALOG_MODEL_CONFIG

    @property
    def label(self) -> str:
        if self.sub_scene:
            return f"{self.scene_type} - {self.sub_scene}"
        return self.scene_type

    def to_evaluation_context(self) -> EvaluationContext:
        tags_text = ", ".join(self.object_tags) if self.object_tags else "なし"
        lines = [
            f"- シーン種別: {self.scene_type}",
            f"- サブシーン: {self.sub_scene or 'なし'}",
            f"- カテゴリ: {self.category or 'なし'}",
            f"- チェック項目: {self.check_item}",
            f"- 根拠: {self.reason or 'なし'}",
            f"- AI用タグ: {tags_text}",
            f"- 補足: {self.notes or 'なし'}",
        ]

        return EvaluationContext(
            label=self.label,
            criteria_text="\n".join(lines),
            focus=self.check_item,
            tags=self.object_tags,
        )


Scene = Annotated[
    Union[SimpleScene, SceneRecord],
    Field(discriminator="kind"),
]


def scene_label(scene: Union[SimpleScene, SceneRecord]) -> str:
    return scene.to_evaluation_context().label


def checklist_item_label(item: Optional[ChecklistItem]) -> str:
    if item is None:
        return "チェック項目"
    return item.check_item
