"""
Session state machine.

Drives one analysis session through its stages in response to explicit
user events and completed model calls. It never transitions on its own.

PDF-with-checklist track:
    INITIAL -> UPLOADING -> ANALYZING_TYPE -> CONFIRM_TYPE
    -> FETCHING_CHECKLIST -> CHECKING -> COMPLETE

Scene track:
    INITIAL -> UPLOADING -> SELECTING_SCENE -> ANALYZING -> COMPLETE

IMPORTANT:
- Any typed failure during a stage returns the session to INITIAL and
  discards everything accumulated by the attempt (file, detection,
  checklist, results and messages). There is no partial recovery.
- Input that is rejected before a stage starts (empty selection, empty
  question) raises without touching session state.
- A reset while a call is in flight invalidates that call: its outcome
  is discarded when it returns.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional, Sequence, Union

from adchecker.app.catalog.client import ChecklistCatalogClient
from adchecker.app.checking.batch import BatchRunner
from adchecker.app.checking.chat import ChatResponder
from adchecker.app.checking.checker import SingleItemChecker
from adchecker.app.checking.errors import (
    CatalogError,
    CheckerError,
    InvalidTransition,
    ValidationError,
)
from adchecker.app.config import CheckerConfig
from adchecker.app.events import (
    CheckEvent,
    CheckEventEmitter,
    CheckEventType,
    NullEventEmitter,
    emit_safely,
)
from adchecker.app.schemas.catalog import AdType, ChecklistItem, Scene, scene_label
from adchecker.app.schemas.judgment import (
    AppropriatenessResult,
    BatchProgress,
    ComplianceResult,
    ComplianceStatus,
    JudgmentSummary,
    TypeDetection,
)
from adchecker.app.schemas.session import (
    ChatMessage,
    SessionError,
    SessionSnapshot,
    SessionStage,
)
from adchecker.app.uploads import UploadedDocument, resolve_mime_type, validate_upload
from adchecker.app.workflow.profile import WorkflowProfile

logger = logging.getLogger(__name__)


CHAT_FAILURE_MESSAGE = "エラーが発生しました。もう一度お試しください。"


class SessionStateMachine:
    """
    One parameterized state machine for every workflow profile.

    Collaborators are injected; the machine owns only session state.
    """

    def __init__(
        self,
        *,
        session_id: str,
        profile: WorkflowProfile,
        config: CheckerConfig,
        checker: SingleItemChecker,
        chat: ChatResponder,
        catalog: Optional[ChecklistCatalogClient] = None,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> None:
        self.session_id = session_id
        self.profile = profile

        self._config = config
        self._checker = checker
        self._chat = chat
        self._catalog = catalog
        self._emitter = emitter or NullEventEmitter()

        # Incremented on every reset; in-flight calls started under an
        # older generation discard their outcome.
        self._generation = 0

        self._stage = SessionStage.INITIAL
        self._last_error: Optional[SessionError] = None
        self._clear()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def stage(self) -> SessionStage:
        return self._stage

    @property
    def document(self) -> Optional[UploadedDocument]:
        return self._document

    def snapshot(self) -> SessionSnapshot:
        document = self._document
        return SessionSnapshot(
            session_id=self.session_id,
            profile=self.profile.name,
            stage=self._stage,
            filename=document.filename if document else None,
            mime_type=document.mime_type if document else None,
            size_bytes=document.size_bytes if document else None,
            detection=self._detection,
            confirmed_type=self._confirmed_type,
            checklist=list(self._checklist),
            scenes=list(self._scenes),
            results=list(self._results),
            summary=JudgmentSummary.from_results(self._results),
            messages=list(self._messages),
            last_error=self._last_error,
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def upload(
        self,
        *,
        filename: str,
        content: bytes,
        declared_mime_type: Optional[str] = None,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> SessionSnapshot:
        """
        Accept a file. On the checklist track this also runs type
        detection and stops at CONFIRM_TYPE.
        """
        self._require(SessionStage.INITIAL, "upload a file")
        emitter = emitter or self._emitter
        generation = self._generation

        self._last_error = None
        await self._emit(
            emitter,
            CheckEventType.SESSION_STARTED,
            {"profile": self.profile.name, "filename": filename},
        )
        await self._transition(SessionStage.UPLOADING, emitter)

        try:
            mime_type = resolve_mime_type(filename, declared_mime_type)
            if not self.profile.accepts(mime_type, self._config):
                raise ValidationError(
                    f"{self.profile.accepted_kinds_label()}ファイルを選択してください"
                )

            self._document = validate_upload(
                filename=filename,
                content=content,
                declared_mime_type=mime_type,
                config=self._config,
            )
        except CheckerError as exc:
            await self._fail(exc, emitter, generation)
            raise

        if self.profile.track == "scene":
            kind = "PDF" if self._document.is_pdf else "画像"
            self._say(
                f"{kind}「{filename}」を受け付けました。\n"
                "判定するシーンを選択してください。"
            )
            await self._transition(SessionStage.SELECTING_SCENE, emitter)
            return self.snapshot()

        await self._transition(SessionStage.ANALYZING_TYPE, emitter)

        try:
            detection = await self._checker.detect_type(
                self._document.file,
                session_id=self.session_id,
                emitter=emitter,
            )
        except CheckerError as exc:
            await self._fail(exc, emitter, generation)
            raise

        if self._is_stale(generation):
            return self.snapshot()

        self._detection = detection
        self._say(format_detection_message(filename, detection))
        await self._transition(SessionStage.CONFIRM_TYPE, emitter)
        return self.snapshot()

    async def confirm_type(
        self,
        ad_type: Optional[AdType] = None,
        *,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> SessionSnapshot:
        """
        Confirm (or override) the detected type, fetch its checklist and
        review the whole checklist in one model call.
        """
        self._require(SessionStage.CONFIRM_TYPE, "confirm the advertisement type")
        emitter = emitter or self._emitter
        generation = self._generation

        ad_type = ad_type or self._detection.detected_type
        self._confirmed_type = ad_type
        self._say(f"「{ad_type.value}」で確定します。", role="user")

        await self._transition(SessionStage.FETCHING_CHECKLIST, emitter)

        try:
            if self._catalog is None:
                raise CatalogError("Catalog client is not configured")

            checklist = await self._catalog.fetch_checklist(ad_type)
            if not checklist:
                raise CatalogError(
                    f"No checklist items for advertisement type {ad_type.value}"
                )
            if self._is_stale(generation):
                return self.snapshot()

            self._checklist = checklist
            await self._transition(SessionStage.CHECKING, emitter)

            results = await self._checker.review_checklist(
                checklist,
                ad_type,
                self._document.file,
                session_id=self.session_id,
                emitter=emitter,
            )
        except CheckerError as exc:
            await self._fail(exc, emitter, generation)
            raise

        if self._is_stale(generation):
            return self.snapshot()

        self._results = list(results)
        self._say(format_compliance_message(self._results))
        await self._complete(emitter)
        return self.snapshot()

    def check_scene_selection(self, scenes: Sequence[Scene]) -> List[Scene]:
        """
        Reject a scene selection this session cannot evaluate.

        Raises before any stage change, so a rejected selection leaves
        the session untouched.
        """
        self._require(SessionStage.SELECTING_SCENE, "select scenes")
        scenes = list(scenes)
        if not scenes:
            raise ValidationError("判定するシーンを選択してください")
        if len(scenes) > 1 and not self.profile.batch_scenes:
            raise ValidationError("このワークフローでは1つのシーンのみ選択できます")
        return scenes

    async def stream_scenes(
        self,
        scenes: Sequence[Scene],
        *,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> AsyncIterator[BatchProgress]:
        """
        Evaluate the selected scenes, yielding progress after each one.

        A single scene is one atomic call: its failure resets the
        session. Several scenes go through the batch runner, which
        recovers per item.
        """
        scenes = self.check_scene_selection(scenes)

        emitter = emitter or self._emitter
        generation = self._generation

        self._scenes = scenes
        if len(scenes) == 1:
            self._say(f"「{scene_label(scenes[0])}」で判定します。", role="user")
        else:
            self._say(f"{len(scenes)}件のシーンで一括判定します。", role="user")

        await self._transition(SessionStage.ANALYZING, emitter)

        if len(scenes) == 1:
            scene = scenes[0]
            try:
                result = await self._checker.check_scene(
                    scene,
                    self._document.file,
                    session_id=self.session_id,
                    emitter=emitter,
                )
            except CheckerError as exc:
                await self._fail(exc, emitter, generation)
                raise

            if self._is_stale(generation):
                return

            self._results = [result]
            yield BatchProgress(
                total=1,
                completed_count=1,
                current_index=0,
                current_unit=scene,
                results_so_far=[result],
            )
            self._say(format_appropriateness_message(result))

        else:
            runner = BatchRunner(
                checker=self._checker,
                scenes=scenes,
                file=self._document.file,
                session_id=self.session_id,
                emitter=emitter,
            )

            async for progress in runner.run():
                if self._is_stale(generation):
                    runner.cancel()
                    continue
                self._results = list(progress.results_so_far)
                yield progress

            if self._is_stale(generation):
                return

            self._say(format_batch_message(self._results))

        await self._complete(emitter)

    async def evaluate_scenes(
        self,
        scenes: Sequence[Scene],
        *,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> SessionSnapshot:
        """Evaluate the selected scenes and return the final snapshot."""
        async for _ in self.stream_scenes(scenes, emitter=emitter):
            pass
        return self.snapshot()

    async def ask(
        self,
        question: str,
        *,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> ChatMessage:
        """
        Answer a follow-up question about the completed results.

        A failed answer is reported in the conversation; it does not
        reset the session.
        """
        self._require(SessionStage.COMPLETE, "ask a question")
        question = (question or "").strip()
        if not question:
            raise ValidationError("質問を入力してください")

        emitter = emitter or self._emitter
        generation = self._generation

        self._say(question, role="user")

        try:
            answer = await self._chat.answer(
                self._results,
                question,
                file=self._document.file if self._document else None,
                session_id=self.session_id,
                emitter=emitter,
            )
        except CheckerError as exc:
            if not self._is_stale(generation):
                logger.warning(
                    "Session %s chat answer failed (%s): %s",
                    self.session_id,
                    exc.kind,
                    exc,
                )
                self._say(CHAT_FAILURE_MESSAGE)
                self._last_error = SessionError(kind=exc.kind, message=exc.user_message)
            raise

        message = ChatMessage(role="ai", text=answer)
        if not self._is_stale(generation):
            self._messages.append(message)
        return message

    async def reset(
        self,
        *,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> SessionSnapshot:
        """Return to INITIAL from any stage, discarding everything."""
        emitter = emitter or self._emitter

        self._generation += 1
        self._clear()
        self._last_error = None
        await self._transition(SessionStage.INITIAL, emitter)
        return self.snapshot()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _clear(self) -> None:
        self._document: Optional[UploadedDocument] = None
        self._detection: Optional[TypeDetection] = None
        self._confirmed_type: Optional[AdType] = None
        self._checklist: List[ChecklistItem] = []
        self._scenes: List[Scene] = []
        self._results: List[Union[AppropriatenessResult, ComplianceResult]] = []
        self._messages: List[ChatMessage] = []

    def _require(self, stage: SessionStage, action: str) -> None:
        if self._stage != stage:
            raise InvalidTransition(
                f"Cannot {action} in stage '{self._stage.value}' "
                f"(expected '{stage.value}')"
            )

    def _is_stale(self, generation: int) -> bool:
        if generation != self._generation:
            logger.info(
                "Session %s was reset during a call; discarding its outcome",
                self.session_id,
            )
            return True
        return False

    def _say(self, text: str, *, role: str = "ai") -> None:
        self._messages.append(ChatMessage(role=role, text=text))

    async def _transition(
        self,
        stage: SessionStage,
        emitter: CheckEventEmitter,
    ) -> None:
        previous = self._stage
        self._stage = stage

        logger.info(
            "Session %s: %s -> %s",
            self.session_id,
            previous.value,
            stage.value,
        )
        await self._emit(
            emitter,
            CheckEventType.STAGE_CHANGED,
            {"from": previous.value, "to": stage.value},
        )

    async def _complete(self, emitter: CheckEventEmitter) -> None:
        await self._transition(SessionStage.COMPLETE, emitter)

        summary = JudgmentSummary.from_results(self._results)
        await self._emit(
            emitter,
            CheckEventType.SESSION_COMPLETED,
            summary.model_dump(),
        )

    async def _fail(
        self,
        exc: CheckerError,
        emitter: CheckEventEmitter,
        generation: int,
    ) -> None:
        if self._is_stale(generation):
            return

        logger.warning(
            "Session %s failed in stage %s (%s): %s",
            self.session_id,
            self._stage.value,
            exc.kind,
            exc,
        )

        failed_stage = self._stage
        self._clear()
        self._last_error = SessionError(kind=exc.kind, message=exc.user_message)
        await self._transition(SessionStage.INITIAL, emitter)

        await self._emit(
            emitter,
            CheckEventType.SESSION_FAILED,
            {
                "stage": failed_stage.value,
                "error_kind": exc.kind,
                "message": exc.user_message,
            },
        )

    async def _emit(
        self,
        emitter: CheckEventEmitter,
        event_type: CheckEventType,
        details: Optional[dict] = None,
    ) -> None:
        await emit_safely(
            emitter,
            CheckEvent(
                session_id=self.session_id,
                event_type=event_type,
                details=details,
            )
        )


# ----------------------------------------------------------------------
# Conversation messages
# ----------------------------------------------------------------------


def _percent(confidence: float) -> int:
    return round(confidence * 100)


def format_detection_message(filename: str, detection: TypeDetection) -> str:
    return (
        f"「{filename}」を解析しました。\n\n"
        f"【広告種別】{detection.detected_type.value}"
        f"（確信度: {_percent(detection.confidence)}%）\n\n"
        f"【概要】\n{detection.summary}\n\n"
        "広告種別を確認してください。"
    )


def format_appropriateness_message(result: AppropriatenessResult) -> str:
    text = (
        "判定完了しました。\n\n"
        f"【結果】{result.verdict}（確信度: {_percent(result.confidence)}%）\n\n"
        f"【理由】\n{result.reason}"
    )
    if result.suggestions:
        text += "\n\n【改善提案】\n" + "\n".join(f"・{s}" for s in result.suggestions)
    return text


def format_batch_message(results: Sequence[AppropriatenessResult]) -> str:
    summary = JudgmentSummary.from_results(results)
    text = (
        "一括判定が完了しました。\n\n"
        f"【結果】適切: {summary.appropriate}件 / "
        f"要改善: {summary.not_appropriate}件（全{summary.total}件）"
    )
    if summary.synthetic_failures:
        text += f"\n※うち{summary.synthetic_failures}件は判定エラーのため要改善として記録しました"

    lines = [
        f"・{result.label}: {result.verdict}（確信度: {_percent(result.confidence)}%）"
        for result in results
    ]
    return text + "\n\n【内訳】\n" + "\n".join(lines)


def format_compliance_message(results: Sequence[ComplianceResult]) -> str:
    summary = JudgmentSummary.from_results(results)
    text = (
        "チェックが完了しました。\n\n"
        f"【結果】OK: {summary.ok}件 / NG: {summary.ng}件 / "
        f"要確認: {summary.needs_review}件"
    )

    flagged = [r for r in results if r.status != ComplianceStatus.OK]
    if flagged:
        lines = []
        for result in flagged:
            line = f"・[{result.verdict}] {result.label}: {result.detail}"
            if result.location:
                line += f"（{result.location}）"
            lines.append(line)
        text += "\n\n【要対応項目】\n" + "\n".join(lines)

    return text
