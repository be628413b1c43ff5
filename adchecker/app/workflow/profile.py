"""
Workflow profiles.

One state machine serves every workflow variant; a profile enumerates
what differs between them:

- which file kinds are accepted
- which track the session follows (type detection + checklist review,
  or scene selection)
- whether several scenes may be evaluated as one batch
"""

from __future__ import annotations

from typing import Dict, Literal

from pydantic import BaseModel, ConfigDict, Field

from adchecker.app.config import CheckerConfig


Track = Literal["pdf_checklist", "scene"]


class WorkflowProfile(BaseModel):
    """Immutable description of one workflow variant."""

    name: str

    track: Track = Field(
        ...,
        description="Stage sequence followed after upload",
    )

    accept_pdf: bool = Field(
        True,
        description="Whether PDF documents are accepted",
    )

    accept_images: bool = Field(
        False,
        description="Whether raster images are accepted",
    )

    batch_scenes: bool = Field(
        False,
        description="Whether more than one scene may be evaluated per run",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    def accepts(self, mime_type: str, config: CheckerConfig) -> bool:
        if mime_type == "application/pdf":
            return self.accept_pdf
        return self.accept_images and mime_type in config.ACCEPTED_IMAGE_TYPES

    def accepted_kinds_label(self) -> str:
        kinds = []
        if self.accept_pdf:
            kinds.append("PDF")
        if self.accept_images:
            kinds.append("画像")
        return "または".join(kinds)


PDF_CHECKLIST = WorkflowProfile(
    name="pdf_checklist",
    track="pdf_checklist",
    accept_pdf=True,
    accept_images=False,
    batch_scenes=False,
)

SCENE_BATCH = WorkflowProfile(
    name="scene",
    track="scene",
    accept_pdf=True,
    accept_images=True,
    batch_scenes=True,
)

SCENE_SINGLE_IMAGE = WorkflowProfile(
    name="scene_single",
    track="scene",
    accept_pdf=False,
    accept_images=True,
    batch_scenes=False,
)

PROFILES: Dict[str, WorkflowProfile] = {
    profile.name: profile
    for profile in (PDF_CHECKLIST, SCENE_BATCH, SCENE_SINGLE_IMAGE)
}


def get_profile(name: str) -> WorkflowProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise ValueError(
            f"Unknown workflow profile '{name}'. "
            f"Allowed values: {sorted(PROFILES)}"
        ) from None
