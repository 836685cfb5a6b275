import logging

import inject

from src.amazongen.application.broadcaster import TaskStatusBroadcaster
from src.amazongen.application.history_sync import HistorySynchronizer
from src.amazongen.domain.events.task_event import TaskEvent

logger = logging.getLogger(__name__)


class TaskEventHandler:
    def __init__(
        self,
        synchronizer: HistorySynchronizer | None = None,
        broadcaster: TaskStatusBroadcaster | None = None,
    ) -> None:
        self._synchronizer = synchronizer or inject.instance(HistorySynchronizer)
        self._broadcaster = broadcaster or inject.instance(TaskStatusBroadcaster)

    async def handle_status_event(self, event: TaskEvent) -> None:
        task_payload = event.payload.get("task")
        if not isinstance(task_payload, dict):
            raise ValueError("Status payload is missing or invalid")
        await self._broadcaster.broadcast_status(event)

    async def handle_succeeded_event(self, event: TaskEvent) -> None:
        # Store writes must not hold up later status events.
        self._synchronizer.schedule(event.user_id, event.task_id)
        logger.debug("Scheduled history sync", extra={"task_id": event.task_id})
