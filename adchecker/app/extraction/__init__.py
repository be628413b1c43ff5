"""
Extraction of structured payloads from free-form model output.
"""

from .extractor import (
    ExtractionErrorKind,
    ExtractionResult,
    extract,
    extract_array,
    extract_object,
    validate_array,
    validate_object,
)

__all__ = [
    "ExtractionErrorKind",
    "ExtractionResult",
    "extract",
    "extract_array",
    "extract_object",
    "validate_array",
    "validate_object",
]
