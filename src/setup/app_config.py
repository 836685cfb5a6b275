from collections.abc import Callable

import inject

from src.amazongen.application.broadcaster import NullStatusBroadcaster, TaskStatusBroadcaster
from src.amazongen.application.history_sync import HistorySynchronizer
from src.amazongen.application.orchestrator import GenerationOrchestrator
from src.amazongen.application.task_board import TaskBoard
from src.amazongen.domain.repositories import (
    BackendRouter,
    HistoryRepository,
    MaskRepository,
    TaskEventPublisherRepository,
)
from src.amazongen.infrastructure.database.orm import DatabaseOrm
from src.amazongen.infrastructure.database.repositories import (
    SqlHistoryRepository,
    SqlMaskRepository,
)
from src.amazongen.infrastructure.events.bus import InProcessEventBus
from src.amazongen.infrastructure.events.consumer import EventConsumer
from src.amazongen.infrastructure.providers.registry import (
    BackendRegistry,
    build_backend_registry,
)
from src.setup.db_config import get_database_settings
from src.setup.event_config import build_event_consumer
from src.setup.orchestrator_config import get_orchestrator_settings


def _bindings(broadcaster: TaskStatusBroadcaster | None) -> Callable[[inject.Binder], None]:
    def _config(binder: inject.Binder) -> None:
        db_settings = get_database_settings()
        orm = DatabaseOrm(db_settings.DATABASE_URL, echo=db_settings.DB_ECHO)
        registry = build_backend_registry()
        bus = InProcessEventBus()

        binder.bind(DatabaseOrm, orm)
        binder.bind(MaskRepository, SqlMaskRepository(orm))
        binder.bind(HistoryRepository, SqlHistoryRepository(orm))
        binder.bind(BackendRegistry, registry)
        binder.bind(BackendRouter, registry)
        binder.bind(InProcessEventBus, bus)
        binder.bind(TaskEventPublisherRepository, bus)
        binder.bind(TaskBoard, TaskBoard(get_orchestrator_settings().MAX_SESSION_TASKS))
        binder.bind(TaskStatusBroadcaster, broadcaster or NullStatusBroadcaster())
        # Built on first use so their own inject.instance() lookups see the bindings above.
        binder.bind_to_constructor(GenerationOrchestrator, GenerationOrchestrator)
        binder.bind_to_constructor(HistorySynchronizer, HistorySynchronizer)
        binder.bind_to_constructor(EventConsumer, build_event_consumer)

    return _config


def configure_di(broadcaster: TaskStatusBroadcaster | None = None) -> None:
    """Bind every process-wide collaborator, replacing any earlier configuration."""
    inject.configure(_bindings(broadcaster), clear=True)
