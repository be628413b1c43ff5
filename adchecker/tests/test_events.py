import json

import anyio

from adchecker.app.config import CheckerConfig
from adchecker.app.events import (
    CheckEvent,
    CheckEventType,
    MemoryQueueEventEmitter,
    emit_safely,
)
from adchecker.app.workflow.profile import SCENE_BATCH
from adchecker.app.workflow.state_machine import SessionStateMachine
from adchecker.tests.checking.helpers import (
    build_chat,
    build_checker,
    make_scene,
    scene_response,
)
from adchecker.tests.checking.mock_generative_executor import MockGenerativeExecutor
from adchecker.tests.fixtures.pdf_factory import PNG_1X1


def _event(event_type, **details):
    return CheckEvent(session_id="s-1", event_type=event_type, details=details or None)


async def _emit_and_collect():
    emitter = MemoryQueueEventEmitter()

    await emitter.emit(_event(CheckEventType.STAGE_CHANGED, to="analyzing"))
    await emitter.emit(_event(CheckEventType.BATCH_ITEM_COMPLETED, index=0))
    await emitter.emit(_event(CheckEventType.SESSION_COMPLETED, total=1))
    # Dropped: the stream is already closed
    await emitter.emit(_event(CheckEventType.STAGE_CHANGED, to="initial"))

    collected = [event async for event in emitter.stream()]
    return emitter, collected


def test_memory_emitter_streams_in_order_and_closes_on_terminal_event():
    emitter, events = anyio.run(_emit_and_collect)

    assert emitter.closed
    assert emitter.dropped == 1
    assert [e.event_type for e in events] == [
        CheckEventType.STAGE_CHANGED,
        CheckEventType.BATCH_ITEM_COMPLETED,
        CheckEventType.SESSION_COMPLETED,
    ]


def test_sse_payload_is_one_frame():
    event = _event(CheckEventType.SESSION_FAILED, message="エラー")

    payload = event.to_sse_payload()

    assert payload.startswith("event: session_failed\ndata: ")
    assert payload.endswith("\n\n")
    data = json.loads(payload.split("data: ", 1)[1])
    assert data["session_id"] == "s-1"
    assert data["details"] == {"message": "エラー"}
    assert "エラー" in payload


class _BrokenEmitter:
    def __init__(self):
        self.attempts = 0

    async def emit(self, event):
        self.attempts += 1
        raise ConnectionResetError("client went away")


def test_emit_safely_swallows_receiver_failure():
    emitter = _BrokenEmitter()

    anyio.run(emit_safely, emitter, _event(CheckEventType.STAGE_CHANGED))

    assert emitter.attempts == 1


async def _run_batch_with_broken_emitter(emitter):
    machine = SessionStateMachine(
        session_id="s-1",
        profile=SCENE_BATCH,
        config=CheckerConfig(),
        checker=build_checker(MockGenerativeExecutor([scene_response(True)] * 2)),
        chat=build_chat(MockGenerativeExecutor()),
        emitter=emitter,
    )
    await machine.upload(filename="a.png", content=PNG_1X1, declared_mime_type="image/png")
    return await machine.evaluate_scenes([make_scene("1"), make_scene("2")])


def test_failing_receiver_does_not_break_session():
    emitter = _BrokenEmitter()

    snapshot = anyio.run(_run_batch_with_broken_emitter, emitter)

    assert snapshot.stage.value == "complete"
    assert len(snapshot.results) == 2
    assert emitter.attempts > 0
