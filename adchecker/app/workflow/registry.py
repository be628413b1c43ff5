"""
In-process session registry.

Sessions hold the uploaded file in memory, so the registry is bounded:
sessions idle longer than the TTL are dropped, and when the registry is
full the least recently used idle session is evicted. A session with a
model call in flight is never evicted.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from adchecker.app.schemas.session import SessionStage
from adchecker.app.workflow.state_machine import SessionStateMachine

logger = logging.getLogger(__name__)


# Stages in which a model or catalog call may be outstanding
BUSY_STAGES = frozenset(
    {
        SessionStage.UPLOADING,
        SessionStage.ANALYZING_TYPE,
        SessionStage.FETCHING_CHECKLIST,
        SessionStage.CHECKING,
        SessionStage.ANALYZING,
    }
)


class SessionRegistry:
    def __init__(
        self,
        *,
        max_sessions: int,
        idle_ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_sessions = max_sessions
        self._idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        # session_id -> (machine, last access), least recently used first
        self._sessions: OrderedDict[str, Tuple[SessionStateMachine, float]] = (
            OrderedDict()
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def add(self, machine: SessionStateMachine) -> None:
        self._evict_expired()
        self._sessions[machine.session_id] = (machine, self._clock())

        while len(self._sessions) > self._max_sessions:
            victim = self._oldest_idle(exclude=machine.session_id)
            if victim is None:
                break
            self._drop(victim, "capacity")

    def get(self, session_id: str) -> Optional[SessionStateMachine]:
        """Look up a session and mark it as recently used."""
        self._evict_expired()
        entry = self._sessions.get(session_id)
        if entry is None:
            return None

        machine = entry[0]
        self._sessions[session_id] = (machine, self._clock())
        self._sessions.move_to_end(session_id)
        return machine

    def remove(self, session_id: str) -> Optional[SessionStateMachine]:
        entry = self._sessions.pop(session_id, None)
        return entry[0] if entry is not None else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _evict_expired(self) -> None:
        deadline = self._clock() - self._idle_ttl_seconds
        expired = [
            session_id
            for session_id, (machine, last_access) in self._sessions.items()
            if last_access < deadline and machine.stage not in BUSY_STAGES
        ]
        for session_id in expired:
            self._drop(session_id, "idle")

    def _oldest_idle(self, *, exclude: str) -> Optional[str]:
        for session_id, (machine, _) in self._sessions.items():
            if session_id != exclude and machine.stage not in BUSY_STAGES:
                return session_id
        return None

    def _drop(self, session_id: str, reason: str) -> None:
        del self._sessions[session_id]
        logger.info("Evicted session %s (%s)", session_id, reason)
