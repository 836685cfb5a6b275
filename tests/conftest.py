from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.amazongen.application.broadcaster import NullStatusBroadcaster, TaskStatusBroadcaster
from src.amazongen.application.history_sync import HistorySynchronizer
from src.amazongen.application.orchestrator import GenerationOrchestrator
from src.amazongen.application.task_board import TaskBoard
from src.amazongen.domain.events.task_event import TaskEvent
from src.amazongen.domain.exceptions import (
    DefinitionNotFoundError,
    HistoryAccessDeniedError,
    HistoryNotFoundError,
    MaskNotFoundError,
)
from src.amazongen.domain.models.generated_image import GeneratedImage
from src.amazongen.domain.models.history import HistoryEntry, HistoryPage
from src.amazongen.domain.models.mask import ProductMask, SceneDefinition
from src.amazongen.domain.models.model_ref import ModelRef, Provider
from src.amazongen.domain.repositories import (
    BackendRouter,
    GenerationBackend,
    HistoryRepository,
    MaskRepository,
    TaskEventPublisherRepository,
)
from src.amazongen.infrastructure.providers.registry import BackendRegistry
from src.setup.orchestrator_config import OrchestratorSettings

SOURCE_IMAGE = "data:image/png;base64,aGVsbG8="


class StubBackend(GenerationBackend):
    """Backend whose outcome is chosen by markers found in the prompt."""

    def __init__(
        self,
        failures: dict[str, Exception] | None = None,
        delays: dict[str, float] | None = None,
        default_delay: float = 0.0,
    ) -> None:
        self.failures = failures or {}
        self.delays = delays or {}
        self.default_delay = default_delay
        self.calls: list[tuple[str, str, ModelRef]] = []
        self.closed = False

    async def generate(self, source_image: str, prompt: str, model: ModelRef) -> GeneratedImage:
        self.calls.append((source_image, prompt, model))
        delay = next(
            (value for marker, value in self.delays.items() if marker in prompt),
            self.default_delay,
        )
        if delay:
            await asyncio.sleep(delay)
        for marker, error in self.failures.items():
            if marker in prompt:
                raise error
        return GeneratedImage(image_url=f"https://img.test/{len(self.calls)}.png", model=model)

    async def aclose(self) -> None:
        self.closed = True


class RecordingPublisher(TaskEventPublisherRepository):
    def __init__(self) -> None:
        self.events: list[TaskEvent] = []

    def publish(self, event: TaskEvent) -> None:
        self.events.append(event)

    def states_for(self, task_id: str) -> list[str]:
        return [
            event.payload["task"]["state"]
            for event in self.events
            if event.task_id == task_id and "task" in event.payload
        ]


class StubHistoryRepository(HistoryRepository):
    def __init__(self, fail_times: int = 0) -> None:
        self.entries: dict[str, HistoryEntry] = {}
        self.appends: list[HistoryEntry] = []
        self.fail_times = fail_times

    async def append(self, user_id: str, entry: HistoryEntry) -> str:
        await asyncio.sleep(0)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("history store unavailable")
        history_id = uuid4().hex
        self.appends.append(entry)
        self.entries[history_id] = entry.model_copy(update={"id": history_id, "user_id": user_id})
        return history_id

    async def list(self, user_id: str, page: int, page_size: int) -> HistoryPage:
        owned = sorted(
            (entry for entry in self.entries.values() if entry.user_id == user_id),
            key=lambda entry: entry.created_at,
            reverse=True,
        )
        start = (page - 1) * page_size
        return HistoryPage(
            items=owned[start:start + page_size], page=page, limit=page_size, total=len(owned)
        )

    async def delete(self, user_id: str, history_id: str) -> None:
        entry = self.entries.get(history_id)
        if entry is None:
            raise HistoryNotFoundError(history_id)
        if entry.user_id != user_id:
            raise HistoryAccessDeniedError(history_id, user_id)
        del self.entries[history_id]


class StubMaskRepository(MaskRepository):
    def __init__(self, masks: list[ProductMask] | None = None) -> None:
        self.masks: dict[str, ProductMask] = {mask.id: mask for mask in masks or []}

    async def list_masks(self, *, public_only: bool = True) -> list[ProductMask]:
        return [mask for mask in self.masks.values() if mask.is_public or not public_only]

    async def get_mask(self, mask_id: str) -> ProductMask:
        if mask_id not in self.masks:
            raise MaskNotFoundError(mask_id)
        return self.masks[mask_id]

    async def create_mask(self, mask: ProductMask) -> ProductMask:
        self.masks[mask.id] = mask
        return mask

    async def update_mask(self, mask_id: str, *, name: str) -> ProductMask:
        mask = await self.get_mask(mask_id)
        mask.name = name
        return mask

    async def delete_mask(self, mask_id: str) -> None:
        await self.get_mask(mask_id)
        del self.masks[mask_id]

    async def add_definition(self, mask_id: str, *, name: str, prompt: str) -> SceneDefinition:
        mask = await self.get_mask(mask_id)
        order = max((item.sort_order for item in mask.definitions), default=-1) + 1
        definition = SceneDefinition(id=uuid4().hex, name=name, prompt=prompt, sort_order=order)
        mask.definitions.append(definition)
        return definition

    async def update_definition(
        self, definition_id: str, *, name: str, prompt: str
    ) -> SceneDefinition:
        definition = self._find_definition(definition_id)
        definition.name = name
        definition.prompt = prompt
        return definition

    async def delete_definition(self, definition_id: str) -> None:
        definition = self._find_definition(definition_id)
        for mask in self.masks.values():
            if definition in mask.definitions:
                mask.definitions.remove(definition)

    def _find_definition(self, definition_id: str) -> SceneDefinition:
        for mask in self.masks.values():
            for definition in mask.definitions:
                if definition.id == definition_id:
                    return definition
        raise DefinitionNotFoundError(definition_id)


def make_definitions(*names: str) -> list[SceneDefinition]:
    return [
        SceneDefinition(id=f"def-{name}", name=name, prompt=f"Scene {name}", sort_order=index)
        for index, name in enumerate(names)
    ]


def make_registry(backend: GenerationBackend) -> BackendRegistry:
    return BackendRegistry({Provider.GOOGLE: backend, Provider.OPENROUTER: backend})


def make_orchestrator(
    backend: GenerationBackend,
    *,
    board: TaskBoard | None = None,
    publisher: TaskEventPublisherRepository | None = None,
    timeout: float = 5.0,
) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        registry=make_registry(backend),
        board=board or TaskBoard(),
        publisher=publisher or RecordingPublisher(),
        settings=OrchestratorSettings(GENERATION_TIMEOUT_SEC=timeout),
    )


@pytest.fixture
def model() -> ModelRef:
    return ModelRef(provider=Provider.GOOGLE, name="gemini-2.5-flash-image")


@pytest.fixture
def board() -> TaskBoard:
    return TaskBoard()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def env_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep settings independent from a developer's .env file."""
    monkeypatch.setenv("APP_NAME", "Test API")
    monkeypatch.setenv("APP_VERSION", "0.1.0")
    monkeypatch.setenv("GENERATION_TIMEOUT_SEC", "5")
    monkeypatch.setenv("DEFAULT_PROVIDER", "google")
    monkeypatch.setenv("DEFAULT_MODEL", "gemini-2.5-flash-image")
    monkeypatch.setenv("BACKGROUND_REMOVAL_PROVIDER", "google")
    monkeypatch.setenv("BACKGROUND_REMOVAL_MODEL", "gemini-2.5-flash-image")


def _patch_inject_instance(
    monkeypatch: pytest.MonkeyPatch, bindings: dict[object, object]
) -> Callable[[object], object]:
    """Patch `inject.instance` to return the stub bound to each interface."""
    import inject

    def fake_instance(interface: object) -> object:
        if interface in bindings:
            return bindings[interface]
        raise RuntimeError(f"Unexpected dependency request: {interface}")

    monkeypatch.setattr(inject, "instance", fake_instance)
    return fake_instance


@pytest.fixture
def api_client(env_settings: None, monkeypatch: pytest.MonkeyPatch):
    """FastAPI test client with every collaborator replaced by an in-memory stub."""
    from src.amazongen.presentation.mask_routes import router as mask_router
    from src.amazongen.presentation.routes import router as api_router

    backend = StubBackend()
    registry = make_registry(backend)
    board = TaskBoard()
    history = StubHistoryRepository()
    masks = StubMaskRepository(
        [
            ProductMask(
                id="mask-1",
                name="Standard set",
                definitions=make_definitions("white", "kitchen"),
                created_at=datetime(2026, 1, 1, tzinfo=UTC),
            )
        ]
    )
    orchestrator = GenerationOrchestrator(
        registry=registry,
        board=board,
        publisher=RecordingPublisher(),
        settings=OrchestratorSettings(GENERATION_TIMEOUT_SEC=5),
    )
    synchronizer = HistorySynchronizer(history=history, board=board)
    _patch_inject_instance(
        monkeypatch,
        {
            GenerationOrchestrator: orchestrator,
            HistorySynchronizer: synchronizer,
            HistoryRepository: history,
            MaskRepository: masks,
            BackendRouter: registry,
            TaskBoard: board,
            TaskStatusBroadcaster: NullStatusBroadcaster(),
        },
    )

    app = FastAPI()
    app.include_router(api_router)
    app.include_router(mask_router)
    with TestClient(app) as client:
        yield client, backend, history, masks
