"""
File upload boundary.

Validates uploaded advertisement files before any model call is made:
only PDFs and the configured raster image types are accepted, and the
size ceiling is enforced. The base64 encoding used for inline model
attachments is derived exactly once, here.
"""

from __future__ import annotations

import io
import logging
import mimetypes
from typing import Optional

import pikepdf
from pydantic import BaseModel, ConfigDict

from adchecker.app.config import CheckerConfig
from adchecker.app.checking.errors import ValidationError
from adchecker.app.llm.executor import InlineFile

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


class UploadedDocument(BaseModel):
    """
    A validated upload. Immutable; shared read-only by every call made
    against it within a session.
    """

    filename: str
    size_bytes: int
    page_count: Optional[int] = None
    file: InlineFile

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def mime_type(self) -> str:
        return self.file.mime_type

    @property
    def is_pdf(self) -> bool:
        return self.file.is_pdf


def resolve_mime_type(filename: str, declared: Optional[str]) -> str:
    """
    Prefer the declared content type; fall back to the filename extension
    when the client sent none or a generic one.
    """
    if declared and declared != "application/octet-stream":
        return declared.split(";")[0].strip().lower()

    guessed, _ = mimetypes.guess_type(filename)
    return (guessed or "application/octet-stream").lower()


def validate_upload(
    *,
    filename: str,
    content: bytes,
    declared_mime_type: Optional[str],
    config: CheckerConfig,
) -> UploadedDocument:
    """
    Validate an upload against the accepted types and the size ceiling.

    Raises ValidationError without touching any external collaborator.
    """
    mime_type = resolve_mime_type(filename, declared_mime_type)

    if mime_type != PDF_MIME_TYPE and mime_type not in config.ACCEPTED_IMAGE_TYPES:
        raise ValidationError(
            "PDFまたは画像ファイル（"
            + ", ".join(t.split("/")[1].upper() for t in config.ACCEPTED_IMAGE_TYPES)
            + "）を選択してください"
        )

    if not content:
        raise ValidationError("アップロードされたファイルが空です")

    if len(content) > config.max_upload_bytes:
        raise ValidationError(
            f"ファイルサイズが上限（{config.MAX_UPLOAD_SIZE_MB}MB）を超えています",
            too_large=True,
        )

    page_count = None
    if mime_type == PDF_MIME_TYPE:
        page_count = _count_pdf_pages(content)
        if page_count == 0:
            raise ValidationError("PDFにページがありません")
        if page_count > config.MAX_PAGE_COUNT:
            raise ValidationError(
                f"PDFのページ数が上限（{config.MAX_PAGE_COUNT}ページ）を超えています"
            )

    logger.info(
        "Accepted upload %s (%s, %d bytes, pages=%s)",
        filename,
        mime_type,
        len(content),
        page_count,
    )

    return UploadedDocument(
        filename=filename,
        size_bytes=len(content),
        page_count=page_count,
        file=InlineFile.from_bytes(content, mime_type),
    )


def _count_pdf_pages(content: bytes) -> int:
    try:
        with pikepdf.open(io.BytesIO(content)) as pdf:
            return len(pdf.pages)
    except pikepdf.PdfError as exc:
        raise ValidationError("PDFファイルを読み込めませんでした") from exc
