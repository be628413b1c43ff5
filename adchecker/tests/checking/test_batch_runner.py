import pytest

from adchecker.app.checking.batch import SYNTHETIC_FAILURE_REASON, BatchRunner
from adchecker.app.events import CheckEventType
from adchecker.tests.checking.helpers import (
    ListEmitter,
    build_checker,
    make_scene,
    png_file,
    scene_response,
)
from adchecker.tests.checking.mock_generative_executor import (
    MockFailure,
    MockGenerativeExecutor,
)

pytestmark = pytest.mark.anyio


def _scenes(count):
    return [make_scene(str(index + 1)) for index in range(count)]


async def test_one_failed_item_does_not_abort_batch():
    scenes = _scenes(5)
    executor = MockGenerativeExecutor(
        [
            scene_response(True, 0.9),
            scene_response(True, 0.8),
            MockFailure("upstream_error"),
            scene_response(False, 0.7),
            scene_response(True, 0.6),
        ]
    )
    runner = BatchRunner(checker=build_checker(executor), scenes=scenes, file=png_file())

    results = await runner.run_to_completion()

    assert len(results) == 5
    assert [r.scene for r in results] == scenes

    synthetic = results[2]
    assert synthetic.synthetic is True
    assert synthetic.is_appropriate is False
    assert synthetic.confidence == 0.0
    assert synthetic.reason == SYNTHETIC_FAILURE_REASON
    assert [r.synthetic for r in results].count(True) == 1

    summary = runner.summary()
    assert summary.total == 5
    assert summary.appropriate == 3
    assert summary.not_appropriate == 2
    assert summary.synthetic_failures == 1


async def test_unparsable_item_is_recovered_too():
    executor = MockGenerativeExecutor(["no json", scene_response(True)])
    runner = BatchRunner(
        checker=build_checker(executor),
        scenes=_scenes(2),
        file=png_file(),
    )

    results = await runner.run_to_completion()

    assert [r.synthetic for r in results] == [True, False]


async def test_progress_is_reported_after_every_item_in_order():
    scenes = _scenes(3)
    executor = MockGenerativeExecutor(
        [scene_response(), MockFailure("timeout"), scene_response()]
    )
    runner = BatchRunner(checker=build_checker(executor), scenes=scenes, file=png_file())

    updates = [progress async for progress in runner.run()]

    assert [p.completed_count for p in updates] == [1, 2, 3]
    assert [p.current_index for p in updates] == [0, 1, 2]
    assert [p.current_unit for p in updates] == scenes
    assert [len(p.results_so_far) for p in updates] == [1, 2, 3]
    assert all(p.total == 3 for p in updates)
    assert updates[-1].done


async def test_calls_are_strictly_sequential():
    executor = MockGenerativeExecutor([scene_response()] * 3)
    runner = BatchRunner(checker=build_checker(executor), scenes=_scenes(3), file=png_file())

    async for progress in runner.run():
        # The next call has not been issued when progress is reported
        assert executor.call_count == progress.completed_count


async def test_runner_is_single_use():
    executor = MockGenerativeExecutor([scene_response()])
    runner = BatchRunner(checker=build_checker(executor), scenes=_scenes(1), file=png_file())

    await runner.run_to_completion()

    with pytest.raises(RuntimeError):
        await runner.run_to_completion()


async def test_cancel_stops_between_items():
    executor = MockGenerativeExecutor([scene_response()] * 4)
    runner = BatchRunner(checker=build_checker(executor), scenes=_scenes(4), file=png_file())

    async for progress in runner.run():
        if progress.completed_count == 2:
            runner.cancel()

    assert runner.cancelled
    assert len(runner.results) == 2
    assert executor.call_count == 2


async def test_batch_events():
    emitter = ListEmitter()
    executor = MockGenerativeExecutor([scene_response(), MockFailure()])
    runner = BatchRunner(
        checker=build_checker(executor),
        scenes=_scenes(2),
        file=png_file(),
        session_id="s-1",
        emitter=emitter,
    )

    await runner.run_to_completion()

    batch_events = [
        e for e in emitter.events
        if e.event_type != CheckEventType.LLM_CALL_STARTED
    ]
    assert [e.event_type for e in batch_events] == [
        CheckEventType.BATCH_STARTED,
        CheckEventType.BATCH_ITEM_COMPLETED,
        CheckEventType.BATCH_ITEM_COMPLETED,
        CheckEventType.BATCH_COMPLETED,
    ]
    assert batch_events[2].details["synthetic"] is True
    assert batch_events[-1].details["synthetic_failures"] == 1
