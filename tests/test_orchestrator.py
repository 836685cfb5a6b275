import asyncio
import random

import pytest

from src.amazongen.application.history_sync import HistorySynchronizer
from src.amazongen.application.orchestrator import GENERIC_FAILURE_MESSAGE, GenerationOrchestrator
from src.amazongen.application.task_board import TaskBoard
from src.amazongen.domain.exceptions import BatchValidationError, InvalidTaskOperationError
from src.amazongen.domain.models.generation_task import CANCELLED_MESSAGE
from src.amazongen.domain.models.model_ref import ModelRef, Provider
from src.amazongen.domain.models.task_state import TaskState
from src.amazongen.infrastructure.providers.registry import BackendRegistry
from src.setup.orchestrator_config import OrchestratorSettings
from tests.conftest import (
    SOURCE_IMAGE,
    RecordingPublisher,
    StubBackend,
    StubHistoryRepository,
    make_definitions,
    make_orchestrator,
)

_ORDER = ["queued", "generating", "succeeded"]


@pytest.mark.asyncio
async def test_three_definitions_with_one_failure(
    model: ModelRef, board: TaskBoard, publisher: RecordingPublisher
) -> None:
    backend = StubBackend(failures={"Scene B": RuntimeError("rate limited")})
    orchestrator = make_orchestrator(backend, board=board, publisher=publisher)

    handle = orchestrator.run_batch("user-1", make_definitions("A", "B", "C"), SOURCE_IMAGE, model)

    assert [task.state for task in handle.tasks] == [TaskState.QUEUED] * 3
    await handle.wait()

    tasks = {task.definition_name: board.get(task.id) for task in handle.tasks}
    assert tasks["A"].state is TaskState.SUCCEEDED
    assert tasks["C"].state is TaskState.SUCCEEDED
    assert tasks["B"].state is TaskState.FAILED
    assert tasks["B"].error_message == "rate limited"
    assert tasks["B"].image_result is None

    history = StubHistoryRepository()
    synchronizer = HistorySynchronizer(history=history, board=board)
    assert await synchronizer.scan_and_submit() == 2
    assert await synchronizer.scan_and_submit() == 0
    assert len(history.appends) == 2
    assert {entry.definition_name for entry in history.appends} == {"A", "C"}


@pytest.mark.asyncio
async def test_run_batch_returns_before_backend_completes(model: ModelRef, board: TaskBoard) -> None:
    backend = StubBackend(default_delay=0.2)
    orchestrator = make_orchestrator(backend, board=board)

    handle = orchestrator.run_batch("user-1", make_definitions("A", "B"), SOURCE_IMAGE, model)

    assert not handle.done
    assert all(not task.is_terminal for task in board.list("user-1"))
    await handle.wait()
    assert all(task.state is TaskState.SUCCEEDED for task in board.list("user-1"))


@pytest.mark.asyncio
async def test_failure_and_slowness_do_not_affect_siblings(model: ModelRef, board: TaskBoard) -> None:
    backend = StubBackend(
        failures={"Scene broken": ValueError("bad input")},
        delays={"Scene slow": 0.1},
    )
    orchestrator = make_orchestrator(backend, board=board)

    handle = orchestrator.run_batch(
        "user-1", make_definitions("slow", "broken", "fast"), SOURCE_IMAGE, model
    )
    await handle.wait()

    states = {task.definition_name: task.state for task in board.list("user-1")}
    assert states == {
        "slow": TaskState.SUCCEEDED,
        "broken": TaskState.FAILED,
        "fast": TaskState.SUCCEEDED,
    }


@pytest.mark.asyncio
async def test_exception_without_message_uses_fallback(model: ModelRef, board: TaskBoard) -> None:
    backend = StubBackend(failures={"Scene A": RuntimeError()})
    orchestrator = make_orchestrator(backend, board=board)

    handle = orchestrator.run_batch("user-1", make_definitions("A"), SOURCE_IMAGE, model)
    await handle.wait()

    assert board.get(handle.task_ids[0]).error_message == GENERIC_FAILURE_MESSAGE


@pytest.mark.asyncio
async def test_timeout_fails_task(model: ModelRef, board: TaskBoard) -> None:
    backend = StubBackend(default_delay=1.0)
    orchestrator = make_orchestrator(backend, board=board, timeout=0.05)

    handle = orchestrator.run_batch("user-1", make_definitions("A"), SOURCE_IMAGE, model)
    await handle.wait()

    task = board.get(handle.task_ids[0])
    assert task.state is TaskState.FAILED
    assert task.error_message == "Generation timed out after 0.05s"


@pytest.mark.asyncio
async def test_cancel_ends_every_task_cancelled(model: ModelRef, board: TaskBoard) -> None:
    backend = StubBackend(default_delay=10)
    orchestrator = make_orchestrator(backend, board=board)

    handle = orchestrator.run_batch("user-1", make_definitions("A", "B", "C"), SOURCE_IMAGE, model)
    await asyncio.sleep(0.01)
    assert orchestrator.cancel_batch(handle.id) == 3
    await handle.wait()

    for task in board.list("user-1"):
        assert task.state is TaskState.CANCELLED
        assert task.error_message == CANCELLED_MESSAGE


@pytest.mark.asyncio
async def test_cancel_before_start_still_settles_tasks(model: ModelRef, board: TaskBoard) -> None:
    orchestrator = make_orchestrator(StubBackend(), board=board)

    handle = orchestrator.run_batch("user-1", make_definitions("A", "B"), SOURCE_IMAGE, model)
    handle.cancel()
    await handle.wait()

    assert [task.state for task in board.list("user-1")] == [TaskState.CANCELLED] * 2


@pytest.mark.asyncio
async def test_validation_rejects_batch_without_creating_tasks(
    model: ModelRef, board: TaskBoard
) -> None:
    orchestrator = make_orchestrator(StubBackend(), board=board)

    with pytest.raises(BatchValidationError):
        orchestrator.run_batch("user-1", [], SOURCE_IMAGE, model)
    with pytest.raises(BatchValidationError):
        orchestrator.run_batch("user-1", make_definitions("A"), "   ", model)

    assert board.list("user-1") == []


@pytest.mark.asyncio
async def test_retry_creates_new_task_and_keeps_original(model: ModelRef, board: TaskBoard) -> None:
    backend = StubBackend(failures={"Scene A": RuntimeError("rate limited")})
    orchestrator = make_orchestrator(backend, board=board)
    handle = orchestrator.run_batch("user-1", make_definitions("A"), SOURCE_IMAGE, model)
    await handle.wait()
    original_id = handle.task_ids[0]

    backend.failures.clear()
    retry = orchestrator.retry("user-1", original_id)
    await retry.wait()

    original = board.get(original_id)
    retried = board.get(retry.task_ids[0])
    assert original.state is TaskState.FAILED
    assert original.error_message == "rate limited"
    assert retried.id != original_id
    assert retried.parent_id == original_id
    assert retried.batch_id != original.batch_id
    assert retried.state is TaskState.SUCCEEDED
    assert retried.source_image == SOURCE_IMAGE

    with pytest.raises(InvalidTaskOperationError):
        orchestrator.retry("user-1", retried.id)


@pytest.mark.asyncio
async def test_regenerate_uses_previous_output_as_source(model: ModelRef, board: TaskBoard) -> None:
    backend = StubBackend()
    orchestrator = make_orchestrator(backend, board=board)
    handle = orchestrator.run_batch("user-1", make_definitions("A"), SOURCE_IMAGE, model)
    await handle.wait()
    first = board.get(handle.task_ids[0])

    other_model = ModelRef(provider=Provider.OPENROUTER, name="google/gemini-3-pro-image-preview")
    regen = orchestrator.regenerate("user-1", first.id, "  add soft shadows ", other_model)
    await regen.wait()

    source_image, prompt, used_model = backend.calls[-1]
    assert source_image == first.image_result
    assert "[User Refinement Instruction]\nadd soft shadows" in prompt
    assert used_model == other_model
    assert board.get(regen.task_ids[0]).parent_id == first.id
    assert first.state is TaskState.SUCCEEDED


@pytest.mark.asyncio
async def test_regenerate_requires_succeeded_task(model: ModelRef, board: TaskBoard) -> None:
    backend = StubBackend(failures={"Scene A": RuntimeError("boom")})
    orchestrator = make_orchestrator(backend, board=board)
    handle = orchestrator.run_batch("user-1", make_definitions("A"), SOURCE_IMAGE, model)
    await handle.wait()

    with pytest.raises(InvalidTaskOperationError):
        orchestrator.regenerate("user-1", handle.task_ids[0])


@pytest.mark.asyncio
async def test_model_without_backend_fails_task(board: TaskBoard) -> None:
    orchestrator = GenerationOrchestrator(
        registry=BackendRegistry({Provider.GOOGLE: StubBackend()}),
        board=board,
        publisher=RecordingPublisher(),
        settings=OrchestratorSettings(),
    )
    model = ModelRef(provider=Provider.OPENROUTER, name="google/gemini-2.5-flash-image")

    handle = orchestrator.run_batch("user-1", make_definitions("A"), SOURCE_IMAGE, model)
    await handle.wait()

    task = board.get(handle.task_ids[0])
    assert task.state is TaskState.FAILED
    assert "openrouter" in (task.error_message or "")


@pytest.mark.asyncio
async def test_observed_states_only_move_forward(
    model: ModelRef, board: TaskBoard, publisher: RecordingPublisher
) -> None:
    rng = random.Random(7)
    names = [str(index) for index in range(8)]
    backend = StubBackend(
        failures={f"Scene {name}": RuntimeError("flaky") for name in names[::3]},
        delays={f"Scene {name}": rng.uniform(0, 0.05) for name in names},
    )
    orchestrator = make_orchestrator(backend, board=board, publisher=publisher)

    handle = orchestrator.run_batch("user-1", make_definitions(*names), SOURCE_IMAGE, model)
    await handle.wait()

    for task_id in handle.task_ids:
        states = publisher.states_for(task_id)
        assert states[:2] == ["queued", "generating"]
        assert states[2] in {"succeeded", "failed"}
        assert len(states) == 3
        final = board.get(task_id)
        assert final.state.value == states[-1]
        if final.state is TaskState.SUCCEEDED:
            assert [event.type.value for event in publisher.events if event.task_id == task_id][
                -1
            ] == "task.succeeded"


@pytest.mark.asyncio
async def test_shutdown_cancels_running_batches(model: ModelRef, board: TaskBoard) -> None:
    orchestrator = make_orchestrator(StubBackend(default_delay=10), board=board)
    orchestrator.run_batch("user-1", make_definitions("A"), SOURCE_IMAGE, model)
    orchestrator.run_batch("user-2", make_definitions("B"), SOURCE_IMAGE, model)
    await asyncio.sleep(0.01)

    await orchestrator.shutdown()

    assert all(task.state is TaskState.CANCELLED for task in board.all())


@pytest.mark.asyncio
async def test_run_batches_rejects_all_when_one_image_is_invalid(
    model: ModelRef, board: TaskBoard, publisher: RecordingPublisher
) -> None:
    orchestrator = make_orchestrator(StubBackend(), board=board, publisher=publisher)

    with pytest.raises(BatchValidationError, match="Source image 2"):
        orchestrator.run_batches("user-1", make_definitions("A"), [SOURCE_IMAGE, "  "], model)
    with pytest.raises(BatchValidationError, match="data URL"):
        orchestrator.run_batches(
            "user-1",
            make_definitions("A"),
            [SOURCE_IMAGE, "http://169.254.169.254/latest/meta-data"],
            model,
        )

    assert board.list("user-1") == []
    assert publisher.events == []


@pytest.mark.asyncio
async def test_run_batches_starts_one_batch_per_image(model: ModelRef, board: TaskBoard) -> None:
    orchestrator = make_orchestrator(StubBackend(), board=board)

    handles = orchestrator.run_batches(
        "user-1", make_definitions("A", "B"), [SOURCE_IMAGE, "data:image/png;base64,d29ybGQ="], model
    )
    await asyncio.gather(*(handle.wait() for handle in handles))

    assert len({handle.id for handle in handles}) == 2
    assert len(board.list("user-1")) == 4


@pytest.mark.asyncio
async def test_finished_batches_are_released_under_the_board_cap(model: ModelRef) -> None:
    board = TaskBoard(max_tasks_per_user=2)
    orchestrator = make_orchestrator(StubBackend(), board=board)
    synchronizer = HistorySynchronizer(history=StubHistoryRepository(), board=board)

    handles = []
    for _ in range(50):
        handle = orchestrator.run_batch("user-1", make_definitions("A"), SOURCE_IMAGE, model)
        await handle.wait()
        await synchronizer.scan_and_submit()
        handles.append(handle)

    assert len(board.list("user-1")) == 2
    assert all(orchestrator.get_batch(handle.id) is None for handle in handles)


@pytest.mark.asyncio
async def test_running_batch_stays_reachable_until_done(model: ModelRef, board: TaskBoard) -> None:
    orchestrator = make_orchestrator(StubBackend(delays={"Scene slow": 0.05}), board=board)

    handle = orchestrator.run_batch("user-1", make_definitions("fast", "slow"), SOURCE_IMAGE, model)
    await asyncio.sleep(0.01)
    assert orchestrator.get_batch(handle.id) is handle

    await handle.wait()
    assert orchestrator.get_batch(handle.id) is None
    assert orchestrator.cancel_batch(handle.id) == 0
