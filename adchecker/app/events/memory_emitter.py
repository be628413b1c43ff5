from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

from adchecker.app.events.models import CheckEvent, TERMINAL_EVENT_TYPES

logger = logging.getLogger(__name__)


class MemoryQueueEventEmitter:
    """
    Queue-backed receiver feeding one SSE response.

    The stream ends after the first SESSION_COMPLETED or SESSION_FAILED,
    or when ``close()`` is called. Events arriving afterwards (e.g. from
    a session that was reset and reused) are counted and dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[CheckEvent]] = asyncio.Queue()
        self._closed = False
        self._dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def dropped(self) -> int:
        return self._dropped

    async def emit(self, event: CheckEvent) -> None:
        if self._closed:
            self._dropped += 1
            logger.debug(
                "Session %s: %s arrived after the stream closed",
                event.session_id,
                event.event_type.value,
            )
            return

        self._queue.put_nowait(event)
        if event.event_type in TERMINAL_EVENT_TYPES:
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def stream(self) -> AsyncIterator[CheckEvent]:
        """Yield events in emission order until the stream closes."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
