from __future__ import annotations

import asyncio

from src.amazongen.domain.events.task_event import TaskEvent
from src.amazongen.domain.repositories import TaskEventPublisherRepository


class InProcessEventBus(TaskEventPublisherRepository):
    """Unbounded queue of task events shared by the orchestrator and the consumer."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[TaskEvent] = asyncio.Queue()

    @property
    def queue(self) -> asyncio.Queue[TaskEvent]:
        return self._queue

    def publish(self, event: TaskEvent) -> None:
        self._queue.put_nowait(event)

    def pending(self) -> int:
        return self._queue.qsize()
