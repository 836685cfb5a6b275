from __future__ import annotations

import logging

from src.amazongen.domain.exceptions import TaskNotFoundError
from src.amazongen.domain.models.generation_task import GenerationTask

logger = logging.getLogger(__name__)


class TaskBoard:
    """In-memory working set of generation tasks, per user, newest first.

    Tasks are mutated in place by id. Only the event loop thread touches the
    board, so no lock is taken. With ``max_tasks_per_user`` at 0 the board
    grows for the lifetime of the process; otherwise the oldest terminal tasks
    of a user are evicted once the cap is exceeded.
    """

    def __init__(self, max_tasks_per_user: int = 0) -> None:
        self._max_tasks = max_tasks_per_user
        self._tasks: dict[str, GenerationTask] = {}
        self._order: dict[str, list[str]] = {}

    def add(self, task: GenerationTask) -> GenerationTask:
        if task.id in self._tasks:
            raise ValueError(f"Task id '{task.id}' is already on the board.")
        self._tasks[task.id] = task
        self._order.setdefault(task.user_id, []).insert(0, task.id)
        self._evict(task.user_id)
        return task

    def get(self, task_id: str, user_id: str | None = None) -> GenerationTask:
        task = self._tasks.get(task_id)
        if task is None or (user_id is not None and task.user_id != user_id):
            raise TaskNotFoundError(task_id)
        return task

    def list(self, user_id: str) -> list[GenerationTask]:
        return [self._tasks[task_id] for task_id in self._order.get(user_id, [])]

    def all(self) -> list[GenerationTask]:
        return list(self._tasks.values())

    def pending_persistence(self, user_id: str | None = None) -> list[GenerationTask]:
        tasks = self.list(user_id) if user_id is not None else self.all()
        return [task for task in tasks if task.awaiting_persistence]

    def _evict(self, user_id: str) -> None:
        if not self._max_tasks:
            return
        order = self._order[user_id]
        overflow = len(order) - self._max_tasks
        for task_id in reversed(order[:]):
            if overflow <= 0:
                break
            task = self._tasks[task_id]
            # Unpersisted successes stay until the history copy is confirmed.
            if task.is_terminal and not task.awaiting_persistence:
                order.remove(task_id)
                del self._tasks[task_id]
                overflow -= 1
        if overflow > 0:
            logger.debug(
                "Task board over capacity with live tasks",
                extra={"user_id": user_id, "overflow": overflow},
            )
