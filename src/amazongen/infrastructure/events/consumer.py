from __future__ import annotations

import asyncio
import logging

from src.amazongen.infrastructure.events.bus import InProcessEventBus
from src.amazongen.infrastructure.events.router import EventRouter

logger = logging.getLogger(__name__)


class EventConsumer:
    """Background loop feeding bus events to the router one at a time.

    A failing handler is logged and the loop moves on to the next event.
    """

    def __init__(self, bus: InProcessEventBus, router: EventRouter) -> None:
        self._bus = bus
        self._router = router
        self._runner: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    async def start(self) -> None:
        if self.running:
            return
        self._runner = asyncio.create_task(self._run(), name="task-event-consumer")
        logger.info("Task event consumer started")

    async def stop(self) -> None:
        if self._runner is None:
            return
        self._runner.cancel()
        try:
            await self._runner
        except asyncio.CancelledError:
            pass
        self._runner = None
        logger.info("Task event consumer stopped")

    async def drain(self) -> None:
        """Wait until every event published so far has been handled."""
        await self._bus.queue.join()

    async def _run(self) -> None:
        queue = self._bus.queue
        while True:
            event = await queue.get()
            try:
                await self._router.dispatch(event)
            except Exception:
                logger.exception(
                    "Task event handler failed",
                    extra={"type": event.type, "task_id": event.task_id},
                )
            finally:
                queue.task_done()
