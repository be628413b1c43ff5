"""
Prompt construction.

Builds the natural-language instruction for each model call. Every
JSON-producing prompt fixes the exact output schema and instructs the
model to emit nothing else, because the extractor assumes the dominant
JSON span of the response is parseable as-is.

Prompts are pure functions of their context: no randomness, no
timestamps. Templates are loaded once from ``templates/``.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from string import Template
from typing import Dict, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from adchecker.app.schemas.catalog import (
    AdType,
    ChecklistItem,
    SceneRecord,
    SimpleScene,
)
from adchecker.app.schemas.judgment import (
    AppropriatenessResult,
    ComplianceResult,
)


TEMPLATES_DIR = Path(__file__).parent / "templates"


class PromptKind(str, Enum):
    TYPE_DETECTION = "type_detection"
    CHECKLIST_REVIEW = "checklist_review"
    SCENE_CHECK = "scene_check"
    CHAT_ANSWER = "chat_answer"


# Prompt kinds whose response is free text rather than JSON
_FREE_TEXT_KINDS = {PromptKind.CHAT_ANSWER}


class Prompt(BaseModel):
    """
    Immutable, fully rendered prompt.
    """

    kind: PromptKind = Field(
        ...,
        description="Prompt kind this text was rendered from",
    )

    text: str = Field(
        ...,
        description="Prompt content",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def expects_json(self) -> bool:
        return self.kind not in _FREE_TEXT_KINDS


# ----------------------------------------------------------------------
# Prompt contexts
# ----------------------------------------------------------------------


class TypeDetectionContext(BaseModel):
    ad_types: Tuple[AdType, ...] = tuple(AdType)

    model_config = ConfigDict(frozen=True)


class ChecklistReviewContext(BaseModel):
    ad_type: AdType
    items: Tuple[ChecklistItem, ...] = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)


class SceneCheckContext(BaseModel):
    scene: Union[SimpleScene, SceneRecord]
    is_pdf: bool = False

    model_config = ConfigDict(frozen=True)


class ChatContext(BaseModel):
    results: Tuple[Union[AppropriatenessResult, ComplianceResult], ...] = ()
    question: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)


PromptContext = Union[
    TypeDetectionContext,
    ChecklistReviewContext,
    SceneCheckContext,
    ChatContext,
]

_CONTEXT_TYPES = {
    PromptKind.TYPE_DETECTION: TypeDetectionContext,
    PromptKind.CHECKLIST_REVIEW: ChecklistReviewContext,
    PromptKind.SCENE_CHECK: SceneCheckContext,
    PromptKind.CHAT_ANSWER: ChatContext,
}


# ----------------------------------------------------------------------
# Builder
# ----------------------------------------------------------------------


class PromptBuilder:
    """
    Renders prompts from file-based templates.

    Constructed once per process; templates are read at construction.
    """

    def __init__(self, templates_dir: Optional[Path] = None) -> None:
        templates_dir = templates_dir or TEMPLATES_DIR
        self._templates: Dict[PromptKind, Template] = {}

        for kind in PromptKind:
            path = templates_dir / f"{kind.value}.txt"
            if not path.exists():
                raise RuntimeError(f"Prompt template not found: {path}")
            self._templates[kind] = Template(path.read_text(encoding="utf-8"))

    def build(self, kind: PromptKind, context: PromptContext) -> Prompt:
        expected = _CONTEXT_TYPES[kind]
        if not isinstance(context, expected):
            raise TypeError(
                f"{kind.value} prompt requires {expected.__name__}, "
                f"got {type(context).__name__}"
            )

        if kind == PromptKind.TYPE_DETECTION:
            values = self._type_detection_values(context)
        elif kind == PromptKind.CHECKLIST_REVIEW:
            values = self._checklist_review_values(context)
        elif kind == PromptKind.SCENE_CHECK:
            values = self._scene_check_values(context)
        else:
            values = self._chat_values(context)

        text = self._templates[kind].substitute(values).strip()
        return Prompt(kind=kind, text=text)

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    def type_detection(self) -> Prompt:
        return self.build(PromptKind.TYPE_DETECTION, TypeDetectionContext())

    def checklist_review(
        self,
        ad_type: AdType,
        items: Sequence[ChecklistItem],
    ) -> Prompt:
        return self.build(
            PromptKind.CHECKLIST_REVIEW,
            ChecklistReviewContext(ad_type=ad_type, items=tuple(items)),
        )

    def scene_check(
        self,
        scene: Union[SimpleScene, SceneRecord],
        *,
        is_pdf: bool,
    ) -> Prompt:
        return self.build(
            PromptKind.SCENE_CHECK,
            SceneCheckContext(scene=scene, is_pdf=is_pdf),
        )

    def chat_answer(
        self,
        results: Sequence[Union[AppropriatenessResult, ComplianceResult]],
        question: str,
    ) -> Prompt:
        return self.build(
            PromptKind.CHAT_ANSWER,
            ChatContext(results=tuple(results), question=question),
        )

    # ------------------------------------------------------------------
    # Template values
    # ------------------------------------------------------------------

    @staticmethod
    def _type_detection_values(context: TypeDetectionContext) -> Dict[str, str]:
        return {
            "ad_types": "\n".join(f"- {t.value}" for t in context.ad_types),
        }

    @staticmethod
    def _checklist_review_values(
        context: ChecklistReviewContext,
    ) -> Dict[str, str]:
        # The number shown on each line IS the index the model must echo
        lines = [
            f"{index}. [ID:{item.id}][{item.category}] "
            f"{item.check_item} (根拠: {item.regulation or 'なし'})"
            for index, item in enumerate(context.items)
        ]
        return {
            "ad_type": context.ad_type.value,
            "checklist": "\n".join(lines),
            "count": str(len(lines)),
            "last_index": str(len(lines) - 1),
        }

    @staticmethod
    def _scene_check_values(context: SceneCheckContext) -> Dict[str, str]:
        evaluation = context.scene.to_evaluation_context()
        file_kind = "PDF広告" if context.is_pdf else "画像"

        points = [
            f"{file_kind}が指定されたシーン（{evaluation.label}）の内容を正しく表しているか",
            f"チェック項目「{evaluation.focus}」を満たしているか",
            "不動産広告として適切な品質か"
            + (
                "（表示の正確性、法令遵守など）"
                if context.is_pdf
                else "（明るさ、構図、清潔感など）"
            ),
            "不適切な"
            + (
                "表記や誤解を招く表現"
                if context.is_pdf
                else "写り込み（個人情報、生活感のある物など）"
            )
            + "がないか",
        ]
        if evaluation.tags:
            points.append(
                f"AI用タグ（{', '.join(evaluation.tags)}）に関連する"
                "オブジェクトが適切に表現されているか"
            )

        return {
            "file_kind": file_kind,
            "criteria": evaluation.criteria_text,
            "judgment_points": "\n".join(
                f"{number}. {point}" for number, point in enumerate(points, 1)
            ),
        }

    @staticmethod
    def _chat_values(context: ChatContext) -> Dict[str, str]:
        lines = [
            f"- {result.label}: {result.verdict} ({result.detail})"
            for result in context.results
        ]
        return {
            "results": "\n".join(lines) if lines else "（判定結果なし）",
            "question": context.question,
        }
