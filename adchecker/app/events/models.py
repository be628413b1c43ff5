from __future__ import annotations

import json
from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime, timezone
from uuid import uuid4, UUID

from pydantic import BaseModel, Field, ConfigDict


# ----------------------------------------------------------------------
# Event Types (Finite)
# ----------------------------------------------------------------------
class CheckEventType(str, Enum):
    """
    Progression events emitted while a session moves through its stages.

    NOTE:
    This enum is finite. New entries must preserve observational semantics.
    """

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    SESSION_STARTED = "session_started"
    STAGE_CHANGED = "stage_changed"
    SESSION_COMPLETED = "session_completed"
    SESSION_FAILED = "session_failed"

    # ------------------------------------------------------------------
    # Model calls (observational)
    # ------------------------------------------------------------------
    LLM_CALL_STARTED = "llm_call_started"
    LLM_CALL_COMPLETED = "llm_call_completed"

    # ------------------------------------------------------------------
    # Batch runs
    # ------------------------------------------------------------------
    BATCH_STARTED = "batch_started"
    BATCH_ITEM_COMPLETED = "batch_item_completed"
    BATCH_COMPLETED = "batch_completed"


TERMINAL_EVENT_TYPES = frozenset(
    {
        CheckEventType.SESSION_COMPLETED,
        CheckEventType.SESSION_FAILED,
    }
)


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class CheckEvent(BaseModel):
    """
    An immutable observation of a transition within a session.

    Events are:
    - strictly observational
    - transport-agnostic
    - never used for control flow
    """

    event_id: UUID = Field(default_factory=uuid4)
    session_id: str = Field(..., description="The session identifier")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: CheckEventType

    # Optional contextual metadata (stage, counts, error kind, etc.)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    def to_sse_payload(self) -> str:
        """Render as a single Server-Sent Events frame."""
        data = json.dumps(
            self.model_dump(mode="json"),
            ensure_ascii=False,
            separators=(",", ":"),
        )
        return f"event: {self.event_type.value}\ndata: {data}\n\n"
