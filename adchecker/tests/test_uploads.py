import base64

import pytest

from adchecker.app.checking.errors import ValidationError
from adchecker.app.config import CheckerConfig
from adchecker.app.uploads import resolve_mime_type, validate_upload
from adchecker.tests.fixtures.pdf_factory import (
    PNG_1X1,
    advertisement_pdf,
    oversized_pdf_bytes,
    pdf_of_size,
    truncated_pdf,
)


@pytest.fixture
def config():
    return CheckerConfig()


def test_two_megabyte_pdf_is_accepted(config):
    content = pdf_of_size(2 * 1024 * 1024)

    document = validate_upload(
        filename="chirashi.pdf",
        content=content,
        declared_mime_type="application/pdf",
        config=config,
    )

    assert document.is_pdf
    assert document.page_count == 1
    assert document.size_bytes == len(content)
    assert document.file.encoded == base64.b64encode(content).decode("ascii")


def test_thirty_megabyte_file_is_rejected_as_too_large(config):
    with pytest.raises(ValidationError) as info:
        validate_upload(
            filename="big.pdf",
            content=oversized_pdf_bytes(30),
            declared_mime_type="application/pdf",
            config=config,
        )

    assert info.value.too_large
    assert "20MB" in str(info.value)


def test_unsupported_type_is_rejected(config):
    with pytest.raises(ValidationError) as info:
        validate_upload(
            filename="notes.txt",
            content=b"hello",
            declared_mime_type="text/plain",
            config=config,
        )

    assert not info.value.too_large


def test_image_is_accepted_without_page_count(config):
    document = validate_upload(
        filename="balcony.png",
        content=PNG_1X1,
        declared_mime_type="image/png",
        config=config,
    )

    assert not document.is_pdf
    assert document.page_count is None
    assert document.file.data_url.startswith("data:image/png;base64,")


def test_empty_file_is_rejected(config):
    with pytest.raises(ValidationError):
        validate_upload(
            filename="empty.pdf",
            content=b"",
            declared_mime_type="application/pdf",
            config=config,
        )


def test_unreadable_pdf_is_rejected(config):
    with pytest.raises(ValidationError):
        validate_upload(
            filename="broken.pdf",
            content=truncated_pdf(),
            declared_mime_type="application/pdf",
            config=config,
        )


def test_page_ceiling_is_enforced():
    config = CheckerConfig(MAX_PAGE_COUNT=2)

    with pytest.raises(ValidationError):
        validate_upload(
            filename="catalog.pdf",
            content=advertisement_pdf(pages=3),
            declared_mime_type="application/pdf",
            config=config,
        )


@pytest.mark.parametrize(
    "filename, declared, expected",
    [
        ("a.pdf", "application/pdf", "application/pdf"),
        ("a.pdf", None, "application/pdf"),
        ("a.png", "application/octet-stream", "image/png"),
        ("a.jpg", "image/jpeg; charset=binary", "image/jpeg"),
        ("noext", None, "application/octet-stream"),
    ],
)
def test_mime_type_resolution(filename, declared, expected):
    assert resolve_mime_type(filename, declared) == expected
