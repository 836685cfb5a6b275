from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from src.amazongen.domain.events.task_event import EventType, TaskEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[TaskEvent], Awaitable[None]]


class EventRouter:
    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}

    def register(self, event_type: EventType, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def get_handlers(self, event_type: EventType) -> list[EventHandler]:
        return list(self._handlers.get(event_type, ()))

    async def dispatch(self, event: TaskEvent) -> None:
        handlers = self.get_handlers(event.type)
        if not handlers:
            logger.warning(
                "No handler registered for event type",
                extra={"type": event.type},
            )
            return
        for handler in handlers:
            await handler(event)
