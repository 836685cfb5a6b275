import asyncio

import pytest

from src.amazongen.application.handlers import TaskEventHandler
from src.amazongen.application.history_sync import HistorySynchronizer
from src.amazongen.application.task_board import TaskBoard
from src.amazongen.domain.events.task_event import EventType, TaskEvent
from src.amazongen.domain.models.history import HistoryEntry
from src.amazongen.domain.models.model_ref import ModelRef
from src.amazongen.infrastructure.events.bus import InProcessEventBus
from src.amazongen.infrastructure.events.consumer import EventConsumer
from src.amazongen.infrastructure.events.router import EventRouter
from src.setup.event_config import build_event_router
from tests.conftest import (
    SOURCE_IMAGE,
    StubBackend,
    StubHistoryRepository,
    make_definitions,
    make_orchestrator,
)


def _event(task_id: str, event_type: EventType = EventType.TASK_SUCCEEDED) -> TaskEvent:
    return TaskEvent(type=event_type, task_id=task_id, user_id="user-1")


@pytest.mark.asyncio
async def test_consumer_survives_failing_handler() -> None:
    handled: list[str] = []

    async def handler(event: TaskEvent) -> None:
        if event.task_id == "bad":
            raise RuntimeError("handler exploded")
        handled.append(event.task_id)

    router = EventRouter()
    router.register(EventType.TASK_SUCCEEDED, handler)
    bus = InProcessEventBus()
    consumer = EventConsumer(bus, router)

    await consumer.start()
    bus.publish(_event("bad"))
    bus.publish(_event("good"))
    await consumer.drain()
    await consumer.stop()

    assert handled == ["good"]
    assert bus.pending() == 0
    assert not consumer.running


@pytest.mark.asyncio
async def test_router_dispatches_to_every_handler_of_a_type() -> None:
    calls: list[str] = []

    async def first(event: TaskEvent) -> None:
        calls.append("first")

    async def second(event: TaskEvent) -> None:
        calls.append("second")

    router = EventRouter()
    router.register(EventType.TASK_STATUS, first)
    router.register(EventType.TASK_STATUS, second)

    await router.dispatch(_event("task-1", EventType.TASK_STATUS))
    await router.dispatch(_event("task-1", EventType.TASK_SUCCEEDED))

    assert calls == ["first", "second"]


@pytest.mark.asyncio
async def test_events_published_before_start_are_handled() -> None:
    handled: list[str] = []

    async def handler(event: TaskEvent) -> None:
        handled.append(event.task_id)

    router = EventRouter()
    router.register(EventType.TASK_SUCCEEDED, handler)
    bus = InProcessEventBus()
    bus.publish(_event("early"))
    consumer = EventConsumer(bus, router)

    await consumer.start()
    await consumer.drain()
    await consumer.stop()

    assert handled == ["early"]


class GatedHistoryRepository(StubHistoryRepository):
    """History store whose writes wait until the test opens the gate."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def append(self, user_id: str, entry: HistoryEntry) -> str:
        await self.gate.wait()
        return await super().append(user_id, entry)


class RecordingBroadcaster:
    def __init__(self) -> None:
        self.states: list[tuple[str, str]] = []

    async def broadcast_status(self, event: TaskEvent) -> None:
        self.states.append((event.payload["task"]["definition_name"], event.payload["task"]["state"]))


@pytest.mark.asyncio
async def test_slow_history_store_does_not_delay_sibling_status(
    model: ModelRef, board: TaskBoard
) -> None:
    history = GatedHistoryRepository()
    synchronizer = HistorySynchronizer(history=history, board=board)
    broadcaster = RecordingBroadcaster()
    bus = InProcessEventBus()
    consumer = EventConsumer(
        bus, build_event_router(TaskEventHandler(synchronizer=synchronizer, broadcaster=broadcaster))
    )
    orchestrator = make_orchestrator(
        StubBackend(delays={"Scene B": 0.05}), board=board, publisher=bus
    )

    await consumer.start()
    handle = orchestrator.run_batch("user-1", make_definitions("A", "B"), SOURCE_IMAGE, model)
    await handle.wait()
    await asyncio.wait_for(consumer.drain(), timeout=1)

    assert ("A", "succeeded") in broadcaster.states
    assert ("B", "succeeded") in broadcaster.states
    assert history.appends == []
    assert synchronizer.pending == 2

    history.gate.set()
    await synchronizer.drain()
    await consumer.stop()

    assert {entry.definition_name for entry in history.appends} == {"A", "B"}
    assert all(task.persisted for task in board.list("user-1"))
