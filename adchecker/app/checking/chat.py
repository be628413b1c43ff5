"""
Chat responder.

Answers free-text questions about prior judgment results. The answer is
returned verbatim; no JSON extraction is performed.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

from adchecker.app.checking.errors import UpstreamFailure, ValidationError
from adchecker.app.events import CheckEventEmitter
from adchecker.app.llm.executor import GenerativeExecutor, InlineFile
from adchecker.app.prompts import PromptBuilder
from adchecker.app.schemas.judgment import (
    AppropriatenessResult,
    ComplianceResult,
)


class ChatResponder:
    """
    Stateless across calls: prior results are passed in every time and
    the caller appends the exchange to its own message history.
    """

    def __init__(
        self,
        *,
        executor: GenerativeExecutor,
        prompts: PromptBuilder,
    ) -> None:
        self._executor = executor
        self._prompts = prompts

    async def answer(
        self,
        results: Sequence[Union[AppropriatenessResult, ComplianceResult]],
        question: str,
        *,
        file: Optional[InlineFile] = None,
        session_id: Optional[str] = None,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> str:
        if not question or not question.strip():
            raise ValidationError("質問を入力してください")

        prompt = self._prompts.chat_answer(results, question)

        result = await self._executor.generate(
            prompt=prompt,
            file=file,
            session_id=session_id,
            emitter=emitter,
        )

        if not result.success:
            raise UpstreamFailure(
                f"chat_answer call failed: {result.failure_type}",
                failure_type=result.failure_type,
                cause=result.raw_error,
            )

        return result.text or ""
