from __future__ import annotations

from typing import Protocol

from src.amazongen.domain.events.task_event import TaskEvent
from src.amazongen.domain.models.generated_image import GeneratedImage
from src.amazongen.domain.models.history import HistoryEntry, HistoryPage
from src.amazongen.domain.models.mask import ProductMask, SceneDefinition
from src.amazongen.domain.models.model_ref import ModelRef


class GenerationBackend(Protocol):
    """Contract for a provider that turns a source image and prompt into an image."""

    async def generate(self, source_image: str, prompt: str, model: ModelRef) -> GeneratedImage:
        """Generate one image; raise on any provider failure."""

    async def aclose(self) -> None:
        """Release network resources held by the backend."""


class HistoryRepository(Protocol):
    """Durable append-only record of succeeded generations, keyed by user."""

    async def append(self, user_id: str, entry: HistoryEntry) -> str:
        """Persist a snapshot and return its history id."""

    async def list(self, user_id: str, page: int, page_size: int) -> HistoryPage:
        """Return one page of the user's history, newest first."""

    async def delete(self, user_id: str, history_id: str) -> None:
        """Delete an entry owned by ``user_id``."""


class MaskRepository(Protocol):
    """Storage for product masks and their scene definitions."""

    async def list_masks(self, *, public_only: bool = True) -> list[ProductMask]:
        """Return masks newest first with definitions in order."""

    async def get_mask(self, mask_id: str) -> ProductMask:
        """Fetch a mask by id."""

    async def create_mask(self, mask: ProductMask) -> ProductMask:
        """Persist a new mask together with its definitions."""

    async def update_mask(self, mask_id: str, *, name: str) -> ProductMask:
        """Rename a mask."""

    async def delete_mask(self, mask_id: str) -> None:
        """Delete a mask and its definitions."""

    async def add_definition(self, mask_id: str, *, name: str, prompt: str) -> SceneDefinition:
        """Append a definition at the end of the mask."""

    async def update_definition(
        self, definition_id: str, *, name: str, prompt: str
    ) -> SceneDefinition:
        """Update a definition's name and prompt."""

    async def delete_definition(self, definition_id: str) -> None:
        """Delete a single definition."""


class TaskEventPublisherRepository(Protocol):
    def publish(self, event: TaskEvent) -> None:
        """Hand an event to the consumer without waiting for it to be handled."""


class BackendRouter(Protocol):
    def backend_for(self, model: ModelRef) -> GenerationBackend:
        """Return the backend serving ``model``'s provider."""
