from __future__ import annotations

import asyncio
import logging

import inject

from src.amazongen.application.task_board import TaskBoard
from src.amazongen.domain.exceptions import TaskNotFoundError
from src.amazongen.domain.models.generation_task import GenerationTask
from src.amazongen.domain.models.history import HistoryEntry
from src.amazongen.domain.repositories import HistoryRepository

logger = logging.getLogger(__name__)


class HistorySynchronizer:
    """Mirrors succeeded tasks into the history store exactly once.

    ``persisted`` on the task is only set after the store returned an id; an
    in-flight set keeps concurrent submissions of the same task from both
    reaching the store. A failed write leaves the task eligible for the next
    pass and never touches its state or image.
    """

    def __init__(
        self,
        history: HistoryRepository | None = None,
        board: TaskBoard | None = None,
    ) -> None:
        self._history = history or inject.instance(HistoryRepository)
        self._board = board or inject.instance(TaskBoard)
        self._in_flight: set[str] = set()
        self._background: set[asyncio.Task[bool]] = set()

    def schedule(self, user_id: str, task_id: str) -> asyncio.Task[bool]:
        """Run ``submit`` in the background and return immediately."""
        job = asyncio.get_running_loop().create_task(
            self.submit(user_id, task_id), name=f"history-sync-{task_id}"
        )
        self._background.add(job)
        job.add_done_callback(self._finished)
        return job

    @property
    def pending(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """Wait for every scheduled submission to finish."""
        while self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def _finished(self, job: asyncio.Task[bool]) -> None:
        self._background.discard(job)
        if job.cancelled():
            return
        error = job.exception()
        if error is not None:
            logger.error(
                "Background history sync crashed",
                extra={"job": job.get_name()},
                exc_info=error,
            )

    async def submit(self, user_id: str, task_id: str) -> bool:
        """Persist one task if it is eligible; return True when it was written."""
        try:
            task = self._board.get(task_id, user_id)
        except TaskNotFoundError:
            logger.warning(
                "Task vanished before history sync",
                extra={"task_id": task_id, "user_id": user_id},
            )
            return False
        return await self._persist(task)

    async def scan_and_submit(self, user_id: str | None = None) -> int:
        """Submit every succeeded, unpersisted task; return how many were written."""
        pending = self._board.pending_persistence(user_id)
        if not pending:
            return 0
        results = await asyncio.gather(*(self._persist(task) for task in pending))
        written = sum(1 for ok in results if ok)
        logger.info(
            "History sync pass finished",
            extra={"user_id": user_id, "pending": len(pending), "written": written},
        )
        return written

    async def _persist(self, task: GenerationTask) -> bool:
        if not task.awaiting_persistence or task.id in self._in_flight:
            return False
        self._in_flight.add(task.id)
        try:
            history_id = await self._history.append(task.user_id, HistoryEntry.from_task(task))
        except Exception as exc:
            logger.warning(
                "Failed to save generation history",
                extra={"task_id": task.id, "user_id": task.user_id, "error": str(exc)},
            )
            return False
        finally:
            self._in_flight.discard(task.id)
        task.mark_persisted(history_id)
        logger.debug("Saved generation history", extra={"task_id": task.id, "history_id": history_id})
        return True
