"""
Single-item checker.

Runs one generative call and turns its output into a bound judgment:

    prompt -> generate -> extract -> validate -> bind

IMPORTANT:
- The call is atomic from the caller's perspective: either a fully bound
  result or a typed CheckerError. No partial results.
- No retries. Retry policy belongs to the caller.
- The model never echoes catalog records back; results are bound to the
  originating scene or checklist item by this module.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Type

from pydantic import BaseModel

from adchecker.app.checking.errors import UnparsableResponse, UpstreamFailure
from adchecker.app.events import CheckEventEmitter, NullEventEmitter
from adchecker.app.extraction import (
    ExtractionErrorKind,
    ExtractionResult,
    extract_array,
    extract_object,
)
from adchecker.app.llm.executor import (
    GenerationResult,
    GenerativeExecutor,
    InlineFile,
)
from adchecker.app.prompts import Prompt, PromptBuilder
from adchecker.app.schemas.catalog import AdType, ChecklistItem, Scene
from adchecker.app.schemas.judgment import (
    AppropriatenessResult,
    ComplianceResult,
    TypeDetection,
)
from adchecker.app.schemas.model_output import (
    ChecklistReviewElement,
    SceneCheckOutput,
    TypeDetectionOutput,
)

logger = logging.getLogger(__name__)


class SingleItemChecker:
    """
    Executes single generative judgments against an uploaded file.

    Stateless across calls; safe to share between sessions.
    """

    def __init__(
        self,
        *,
        executor: GenerativeExecutor,
        prompts: PromptBuilder,
    ) -> None:
        self._executor = executor
        self._prompts = prompts

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def detect_type(
        self,
        file: InlineFile,
        *,
        session_id: Optional[str] = None,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> TypeDetection:
        """Classify the whole document into one advertisement type."""
        prompt = self._prompts.type_detection()
        text = await self._generate(prompt, file, session_id, emitter)

        output = self._unwrap(
            extract_object(text, TypeDetectionOutput),
            prompt,
        )

        return TypeDetection(
            detected_type=output.detectedType,
            confidence=output.confidence,
            summary=output.summary,
        )

    async def check_scene(
        self,
        scene: Scene,
        file: InlineFile,
        *,
        session_id: Optional[str] = None,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> AppropriatenessResult:
        """Judge the file against one scene's criteria."""
        prompt = self._prompts.scene_check(scene, is_pdf=file.is_pdf)
        text = await self._generate(prompt, file, session_id, emitter)

        output = self._unwrap(
            extract_object(text, SceneCheckOutput),
            prompt,
        )

        return AppropriatenessResult(
            scene=scene,
            is_appropriate=output.isAppropriate,
            confidence=output.confidence,
            reason=output.reason,
            suggestions=tuple(output.suggestions),
        )

    async def review_checklist(
        self,
        items: Sequence[ChecklistItem],
        ad_type: AdType,
        file: InlineFile,
        *,
        session_id: Optional[str] = None,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> List[ComplianceResult]:
        """
        Review the whole checklist in ONE generative call.

        Every element of the response array is bound back to its item by
        ``checklistIndex``. The response must reference each index
        0..N-1 exactly once; results are returned in checklist order.
        """
        items = list(items)
        prompt = self._prompts.checklist_review(ad_type, items)
        text = await self._generate(prompt, file, session_id, emitter)

        elements: List[ChecklistReviewElement] = self._unwrap(
            extract_array(text, ChecklistReviewElement),
            prompt,
        )

        by_index: Dict[int, ChecklistReviewElement] = {}
        for element in elements:
            index = element.checklistIndex
            if index >= len(items):
                self._schema_mismatch(
                    prompt,
                    f"checklistIndex {index} out of range (0..{len(items) - 1})",
                )
            if index in by_index:
                self._schema_mismatch(
                    prompt,
                    f"checklistIndex {index} appears more than once",
                )
            by_index[index] = element

        missing = [i for i in range(len(items)) if i not in by_index]
        if missing:
            self._schema_mismatch(
                prompt,
                f"missing results for checklistIndex {missing}",
            )

        return [
            ComplianceResult(
                item=item,
                status=by_index[index].status,
                detail=by_index[index].detail,
                location=by_index[index].location,
            )
            for index, item in enumerate(items)
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _generate(
        self,
        prompt: Prompt,
        file: Optional[InlineFile],
        session_id: Optional[str],
        emitter: Optional[CheckEventEmitter],
    ) -> str:
        result: GenerationResult = await self._executor.generate(
            prompt=prompt,
            file=file,
            session_id=session_id,
            emitter=emitter or NullEventEmitter(),
        )

        if not result.success:
            raise UpstreamFailure(
                f"{prompt.kind.value} call failed: {result.failure_type}",
                failure_type=result.failure_type,
                cause=result.raw_error,
            )

        return result.text or ""

    @staticmethod
    def _unwrap(extracted: ExtractionResult, prompt: Prompt):
        if extracted.success:
            return extracted.value

        logger.warning(
            "Unparsable %s response (%s): %s",
            prompt.kind.value,
            extracted.error.value,
            extracted.raw_error,
        )
        raise UnparsableResponse(
            f"{prompt.kind.value} response could not be parsed: "
            f"{extracted.error.value}",
            extraction_error=extracted.error,
            raw_error=extracted.raw_error,
        )

    @staticmethod
    def _schema_mismatch(prompt: Prompt, message: str) -> None:
        logger.warning(
            "Unparsable %s response (%s): %s",
            prompt.kind.value,
            ExtractionErrorKind.SCHEMA_MISMATCH.value,
            message,
        )
        raise UnparsableResponse(
            f"{prompt.kind.value} response could not be parsed: {message}",
            extraction_error=ExtractionErrorKind.SCHEMA_MISMATCH,
            raw_error=message,
        )
