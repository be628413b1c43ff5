"""
Session schema.

Read-only views of an analysis session, exposed to the HTTP layer.
The mutable session itself is owned by the state machine.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from adchecker.app.schemas.catalog import AdType, ChecklistItem, Scene
from adchecker.app.schemas.judgment import (
    JudgmentResult,
    JudgmentSummary,
    TypeDetection,
)


class SessionStage(str, Enum):
    """
    Stages of the analysis workflow.

    PDF-with-checklist track:
        INITIAL -> UPLOADING -> ANALYZING_TYPE -> CONFIRM_TYPE
        -> FETCHING_CHECKLIST -> CHECKING -> COMPLETE
    Scene track:
        INITIAL -> SELECTING_SCENE -> ANALYZING -> COMPLETE
    """

    INITIAL = "initial"
    UPLOADING = "uploading"
    ANALYZING_TYPE = "analyzing_type"
    CONFIRM_TYPE = "confirm_type"
    FETCHING_CHECKLIST = "fetching_checklist"
    CHECKING = "checking"
    SELECTING_SCENE = "selecting_scene"
    ANALYZING = "analyzing"
    COMPLETE = "complete"


class ChatMessage(BaseModel):
    """One message in the session conversation."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    role: Literal["user", "ai"]
    text: str
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


class SessionError(BaseModel):
    """The error that last returned the session to its initial stage."""

    kind: str
    message: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class SessionSnapshot(BaseModel):
    """
    Immutable snapshot of a session.

    Binary file content is never included; only its metadata.
    """

    session_id: str
    profile: str
    stage: SessionStage

    filename: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None

    detection: Optional[TypeDetection] = None
    confirmed_type: Optional[AdType] = None

    checklist: List[ChecklistItem] = Field(default_factory=list)
    scenes: List[Scene] = Field(default_factory=list)

    results: List[JudgmentResult] = Field(default_factory=list)
    summary: JudgmentSummary = Field(default_factory=JudgmentSummary)

    messages: List[ChatMessage] = Field(default_factory=list)
    last_error: Optional[SessionError] = None

    model_config = ConfigDict(frozen=True, extra="forbid")
