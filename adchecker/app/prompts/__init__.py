"""
Prompt templates and the builder that renders them.
"""

from .builder import Prompt, PromptBuilder, PromptKind

__all__ = [
    "Prompt",
    "PromptBuilder",
    "PromptKind",
]
