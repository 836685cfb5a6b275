import inject

from src.amazongen.application.handlers import TaskEventHandler
from src.amazongen.domain.events.task_event import EventType
from src.amazongen.infrastructure.events.bus import InProcessEventBus
from src.amazongen.infrastructure.events.consumer import EventConsumer
from src.amazongen.infrastructure.events.router import EventRouter


def build_event_router(handler: TaskEventHandler | None = None) -> EventRouter:
    """Build an event router wired to the task event handler."""
    router = EventRouter()
    if handler is None:
        handler = TaskEventHandler()
    router.register(EventType.TASK_STATUS, handler.handle_status_event)
    router.register(EventType.TASK_SUCCEEDED, handler.handle_succeeded_event)
    return router


def build_event_consumer(bus: InProcessEventBus | None = None) -> EventConsumer:
    """Create the consumer that drains the in-process bus into the router."""
    if bus is None:
        bus = inject.instance(InProcessEventBus)
    return EventConsumer(bus, build_event_router())
