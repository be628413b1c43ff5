from __future__ import annotations

import logging
from typing import Protocol

from adchecker.app.events.models import CheckEvent

logger = logging.getLogger(__name__)


class CheckEventEmitter(Protocol):
    """
    Receiver of session observations.

    Events describe what a session did; no caller branches on whether
    delivery succeeded. Use ``emit_safely`` rather than calling ``emit``
    directly so a failing receiver cannot break a session.
    """

    async def emit(self, event: CheckEvent) -> None:
        ...


class NullEventEmitter:
    """No-op receiver for sessions nobody is streaming."""

    async def emit(self, event: CheckEvent) -> None:
        return


async def emit_safely(emitter: CheckEventEmitter, event: CheckEvent) -> None:
    """Deliver ``event``; a receiver failure is logged and swallowed."""
    try:
        await emitter.emit(event)
    except Exception:
        logger.warning(
            "Session %s: %s event not delivered",
            event.session_id,
            event.event_type.value,
            exc_info=True,
        )
