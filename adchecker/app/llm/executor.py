from __future__ import annotations

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from typing import Literal, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from azure.identity import (
    DefaultAzureCredential,
    get_bearer_token_provider,
)
import openai
from openai import AsyncAzureOpenAI

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from adchecker.app.config import CheckerConfig
from adchecker.app.prompts.builder import Prompt

# Optional events (observational only)
from adchecker.app.events import (
    CheckEvent,
    CheckEventType,
    CheckEventEmitter,
    NullEventEmitter,
    emit_safely,
)

logger = logging.getLogger(__name__)


FailureType = Literal[
    "timeout",
    "quota_exceeded",
    "rejected_request",
    "refusal",
    "upstream_error",
]


# ----------------------------------------------------------------------
# Inline file
# ----------------------------------------------------------------------

class InlineFile(BaseModel):
    """
    A file attached inline to a generative call.

    ``encoded`` is the base64 form of ``data``; it is derived once by the
    upload boundary and shared read-only across calls.
    """

    data: bytes
    mime_type: str
    encoded: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> "InlineFile":
        return cls(
            data=data,
            mime_type=mime_type,
            encoded=base64.b64encode(data).decode("ascii"),
        )

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf"

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.encoded}"


# ----------------------------------------------------------------------
# Generation Result
# ----------------------------------------------------------------------

class GenerationResult(BaseModel):
    """
    Canonical result of one generative call.

    Executors MUST never raise and MUST normalize all outcomes into
    this object. ``text`` carries no guaranteed structure.
    """

    success: bool
    text: Optional[str] = None

    failure_type: Optional[FailureType] = None
    raw_error: Optional[str] = None

    model_name: str
    prompt_kind: str

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


# ----------------------------------------------------------------------
# Executor Interface
# ----------------------------------------------------------------------

class GenerativeExecutor(Protocol):
    async def generate(
        self,
        *,
        prompt: Prompt,
        file: Optional[InlineFile] = None,
        session_id: Optional[str] = None,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> GenerationResult:
        ...


class _ExecutorBase(ABC):
    """
    Shared lifecycle for concrete executors: event emission, upper-bound
    timeout and failure normalization. Subclasses implement ``_call``.
    """

    def __init__(self, *, model_name: str, timeout_seconds: float) -> None:
        self._model_name = model_name
        self._timeout_seconds = timeout_seconds

    @property
    def model_name(self) -> str:
        return self._model_name

    @abstractmethod
    async def _call(
        self,
        prompt: Prompt,
        file: Optional[InlineFile],
    ) -> str:
        """Perform the provider call and return the raw response text."""

    def _classify(self, exc: Exception) -> FailureType:
        return "upstream_error"

    async def generate(
        self,
        *,
        prompt: Prompt,
        file: Optional[InlineFile] = None,
        session_id: Optional[str] = None,
        emitter: Optional[CheckEventEmitter] = None,
    ) -> GenerationResult:
        emitter = emitter or NullEventEmitter()
        result: Optional[GenerationResult] = None

        if session_id is not None:
            await emit_safely(
                emitter,
                CheckEvent(
                    session_id=session_id,
                    event_type=CheckEventType.LLM_CALL_STARTED,
                    details={
                        "prompt_kind": prompt.kind.value,
                        "model_name": self._model_name,
                        "mime_type": file.mime_type if file else None,
                    },
                )
            )

        try:
            text = await asyncio.wait_for(
                self._call(prompt, file),
                timeout=self._timeout_seconds,
            )

            result = GenerationResult(
                success=True,
                text=text,
                model_name=self._model_name,
                prompt_kind=prompt.kind.value,
            )

        except asyncio.TimeoutError as exc:
            result = GenerationResult(
                success=False,
                failure_type="timeout",
                raw_error=str(exc) or "Generative call timed out",
                model_name=self._model_name,
                prompt_kind=prompt.kind.value,
            )

        except Exception as exc:
            result = GenerationResult(
                success=False,
                failure_type=self._classify(exc),
                raw_error=str(exc),
                model_name=self._model_name,
                prompt_kind=prompt.kind.value,
            )

        finally:
            if session_id is not None and result is not None:
                await emit_safely(
                    emitter,
                    CheckEvent(
                        session_id=session_id,
                        event_type=CheckEventType.LLM_CALL_COMPLETED,
                        details={
                            "prompt_kind": prompt.kind.value,
                            "success": result.success,
                            "failure_type": result.failure_type,
                        },
                    )
                )

        if not result.success:
            logger.warning(
                "Generative call failed (kind=%s, model=%s, failure=%s): %s",
                prompt.kind.value,
                self._model_name,
                result.failure_type,
                result.raw_error,
            )

        return result


# ----------------------------------------------------------------------
# Azure OpenAI Executor (Entra ID)
# ----------------------------------------------------------------------

class AzureOpenAIGenerativeExecutor(_ExecutorBase):
    """
    Azure OpenAI implementation of GenerativeExecutor.

    Authenticates with Entra ID; no API key is read. Images are attached
    as data-URL image parts, PDFs as inline file parts.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        deployment: str,
        api_version: str,
        timeout_seconds: float = 60.0,
    ) -> None:
        super().__init__(model_name=deployment, timeout_seconds=timeout_seconds)

        credential = DefaultAzureCredential()
        token_provider = get_bearer_token_provider(
            credential,
            "https://cognitiveservices.azure.com/.default",
        )

        self._client = AsyncAzureOpenAI(
            azure_endpoint=endpoint,
            azure_ad_token_provider=token_provider,
            api_version=api_version,
            timeout=timeout_seconds,
            max_retries=0,
        )

    async def _call(
        self,
        prompt: Prompt,
        file: Optional[InlineFile],
    ) -> str:
        content = [{"type": "text", "text": prompt.text}]

        if file is not None:
            if file.is_pdf:
                content.append(
                    {
                        "type": "file",
                        "file": {
                            "filename": "advertisement.pdf",
                            "file_data": file.data_url,
                        },
                    }
                )
            else:
                content.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": file.data_url},
                    }
                )

        response = await self._client.chat.completions.create(
            model=self._model_name,
            messages=[{"role": "user", "content": content}],
        )

        message = response.choices[0].message
        if getattr(message, "refusal", None):
            raise _RefusalError(message.refusal)

        return message.content or ""

    def _classify(self, exc: Exception) -> FailureType:
        if isinstance(exc, _RefusalError):
            return "refusal"
        if isinstance(exc, openai.APITimeoutError):
            return "timeout"
        if isinstance(exc, openai.RateLimitError):
            return "quota_exceeded"
        if isinstance(exc, (openai.BadRequestError, openai.UnprocessableEntityError)):
            return "rejected_request"
        return "upstream_error"


class _RefusalError(Exception):
    """The model declined to answer."""


# ----------------------------------------------------------------------
# Gemini Executor
# ----------------------------------------------------------------------

class GeminiGenerativeExecutor(_ExecutorBase):
    """
    Google Gemini implementation of GenerativeExecutor.

    The file is sent as an inline bytes part ahead of the prompt text.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model_name: str,
        timeout_seconds: float = 60.0,
    ) -> None:
        super().__init__(model_name=model_name, timeout_seconds=timeout_seconds)

        self._client = genai.Client(
            api_key=api_key,
            http_options=genai_types.HttpOptions(
                timeout=int(timeout_seconds * 1000),
            ),
        )

    async def _call(
        self,
        prompt: Prompt,
        file: Optional[InlineFile],
    ) -> str:
        contents = []
        if file is not None:
            contents.append(
                genai_types.Part.from_bytes(
                    data=file.data,
                    mime_type=file.mime_type,
                )
            )
        contents.append(prompt.text)

        response = await self._client.aio.models.generate_content(
            model=self._model_name,
            contents=contents,
        )

        return response.text or ""

    def _classify(self, exc: Exception) -> FailureType:
        if isinstance(exc, genai_errors.APIError):
            if exc.code == 429:
                return "quota_exceeded"
            if exc.code in {400, 413, 422}:
                return "rejected_request"
        return "upstream_error"


# ----------------------------------------------------------------------
# Disabled Executor
# ----------------------------------------------------------------------

class DisabledGenerativeExecutor(_ExecutorBase):
    """Executor used when no provider is configured. Every call fails."""

    def __init__(self) -> None:
        super().__init__(model_name="disabled", timeout_seconds=1.0)

    async def _call(
        self,
        prompt: Prompt,
        file: Optional[InlineFile],
    ) -> str:
        raise RuntimeError("No generative model provider is configured")


# ----------------------------------------------------------------------
# Construction
# ----------------------------------------------------------------------

def build_executor(config: CheckerConfig) -> GenerativeExecutor:
    """
    Construct the executor selected by ``MODEL_PROVIDER``.

    Called once at process start.
    """
    if config.MODEL_PROVIDER == "azure_openai":
        return AzureOpenAIGenerativeExecutor(
            endpoint=config.AZURE_OPENAI_ENDPOINT,
            deployment=config.AZURE_OPENAI_DEPLOYMENT,
            api_version=config.AZURE_OPENAI_API_VERSION,
            timeout_seconds=config.LLM_TIMEOUT_SECONDS,
        )

    if config.MODEL_PROVIDER == "gemini":
        return GeminiGenerativeExecutor(
            api_key=config.GEMINI_API_KEY.get_secret_value(),
            model_name=config.MODEL_NAME,
            timeout_seconds=config.LLM_TIMEOUT_SECONDS,
        )

    return DisabledGenerativeExecutor()
