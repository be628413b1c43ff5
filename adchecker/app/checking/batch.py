"""
Sequential batch runner.

Evaluates an ordered sequence of scenes against one uploaded file, one
call at a time, reporting progress after every item.

IMPORTANT:
- Strictly sequential. No parallel fan-out.
- A failed item never aborts the batch: it is recorded as a synthetic
  negative result and the runner proceeds to the next item.
- A runner is single-use. Construct a new one to retry.
- Cancellation takes effect between items only; an in-flight call runs
  to completion or failure.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional, Sequence

from adchecker.app.checking.checker import SingleItemChecker
from adchecker.app.checking.errors import CheckerError
from adchecker.app.events import (
    CheckEvent,
    CheckEventEmitter,
    CheckEventType,
    NullEventEmitter,
    emit_safely,
)
from adchecker.app.llm.executor import InlineFile
from adchecker.app.schemas.catalog import Scene, scene_label
from adchecker.app.schemas.judgment import (
    AppropriatenessResult,
    BatchProgress,
    JudgmentSummary,
)

logger = logging.getLogger(__name__)


SYNTHETIC_FAILURE_REASON = "判定処理中にエラーが発生したため、判定できませんでした"


def synthetic_failure(scene: Scene) -> AppropriatenessResult:
    """Negative placeholder recorded in place of a failed check."""
    return AppropriatenessResult(
        scene=scene,
        is_appropriate=False,
        confidence=0.0,
        reason=SYNTHETIC_FAILURE_REASON,
        suggestions=(),
        synthetic=True,
    )


class BatchRunner:
    """
    Single-use, deterministic orchestrator for a batch of scene checks.

    This runner owns:
    - item ordering (as provided at construction time)
    - execution sequencing
    - per-item failure recovery

    It does NOT own:
    - retry policy
    - session state
    """

    def __init__(
        self,
        *,
        checker: SingleItemChecker,
        scenes: Sequence[Scene],
        file: InlineFile,
        session_id: Optional[str] = None,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> None:
        self._checker = checker
        self._scenes = list(scenes)  # freeze order
        self._file = file
        self._session_id = session_id
        self._emitter = emitter or NullEventEmitter()

        self._results: List[AppropriatenessResult] = []
        self._started = False
        self._cancelled = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def total(self) -> int:
        return len(self._scenes)

    @property
    def results(self) -> List[AppropriatenessResult]:
        return list(self._results)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop scheduling further items. Takes effect between items."""
        self._cancelled = True

    def summary(self) -> JudgmentSummary:
        return JudgmentSummary.from_results(self._results)

    async def run(self) -> AsyncIterator[BatchProgress]:
        """
        Execute every item in order, yielding progress after each one.

        Raises RuntimeError if the runner has already been started.
        """
        if self._started:
            raise RuntimeError("BatchRunner is single-use; construct a new one")
        self._started = True

        await self._emit(
            CheckEventType.BATCH_STARTED,
            {"total": self.total},
        )

        for index, scene in enumerate(self._scenes):
            if self._cancelled:
                logger.info(
                    "Batch cancelled after %d of %d items",
                    len(self._results),
                    self.total,
                )
                break

            try:
                result = await self._checker.check_scene(
                    scene,
                    self._file,
                    session_id=self._session_id,
                    emitter=self._emitter,
                )
            except CheckerError as exc:
                logger.warning(
                    "Batch item %d (%s) failed with %s; recording synthetic result",
                    index,
                    scene_label(scene),
                    exc.kind,
                )
                result = synthetic_failure(scene)

            self._results.append(result)

            await self._emit(
                CheckEventType.BATCH_ITEM_COMPLETED,
                {
                    "index": index,
                    "label": result.label,
                    "is_appropriate": result.is_appropriate,
                    "synthetic": result.synthetic,
                },
            )

            yield BatchProgress(
                total=self.total,
                completed_count=len(self._results),
                current_index=index,
                current_unit=scene,
                results_so_far=list(self._results),
            )

        summary = self.summary()
        await self._emit(
            CheckEventType.BATCH_COMPLETED,
            {
                "total": self.total,
                "completed": summary.total,
                "appropriate": summary.appropriate,
                "not_appropriate": summary.not_appropriate,
                "synthetic_failures": summary.synthetic_failures,
                "cancelled": self._cancelled,
            },
        )

    async def run_to_completion(self) -> List[AppropriatenessResult]:
        """Drain ``run()`` and return every recorded result."""
        async for _ in self.run():
            pass
        return self.results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _emit(self, event_type: CheckEventType, details: dict) -> None:
        if self._session_id is None:
            return
        await emit_safely(
            self._emitter,
            CheckEvent(
                session_id=self._session_id,
                event_type=event_type,
                details=details,
            )
        )
