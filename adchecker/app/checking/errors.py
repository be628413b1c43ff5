"""
Error taxonomy.

Every failure surfaced by the checker is a typed, recoverable condition:
the operator can always retry. Nothing here is fatal to the process.

- ValidationError: bad input (file type/size, missing field). Raised
  before any model call.
- UpstreamFailure: the generative or catalog collaborator failed
  (network, quota, rejected request).
- UnparsableResponse: the model answered, but its output did not carry a
  well-formed, schema-conforming JSON payload.
- InvalidTransition: an event arrived in a stage that does not accept it.
"""

from __future__ import annotations

from typing import Optional

from adchecker.app.extraction import ExtractionErrorKind


class CheckerError(Exception):
    """Base class for all checker errors."""

    kind: str = "checker_error"
    user_message: str = "エラーが発生しました。もう一度お試しください。"


class ValidationError(CheckerError):
    kind = "validation_error"

    def __init__(self, message: str, *, too_large: bool = False) -> None:
        super().__init__(message)
        self.too_large = too_large

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return str(self)


class UpstreamFailure(CheckerError):
    kind = "upstream_failure"
    user_message = "AIサービスとの通信に失敗しました。しばらくしてから再度お試しください。"

    def __init__(
        self,
        message: str,
        *,
        failure_type: Optional[str] = None,
        cause: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.failure_type = failure_type
        self.cause = cause


class CatalogError(UpstreamFailure):
    kind = "catalog_failure"
    user_message = "チェックリストの取得に失敗しました。しばらくしてから再度お試しください。"


class UnparsableResponse(CheckerError):
    kind = "unparsable_response"
    user_message = "AIの応答を解析できませんでした。もう一度お試しください。"

    def __init__(
        self,
        message: str,
        *,
        extraction_error: ExtractionErrorKind,
        raw_error: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.extraction_error = extraction_error
        self.raw_error = raw_error

    @property
    def is_schema_mismatch(self) -> bool:
        return self.extraction_error == ExtractionErrorKind.SCHEMA_MISMATCH


class InvalidTransition(CheckerError):
    kind = "invalid_transition"

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return str(self)
