from collections.abc import Sequence
from typing import cast
from uuid import uuid4

import inject

from src.amazongen.application.dtos import DefinitionInput
from src.amazongen.domain.exceptions import DefinitionNotFoundError, MaskValidationError
from src.amazongen.domain.models.history import HistoryPage
from src.amazongen.domain.models.mask import ProductMask, SceneDefinition
from src.amazongen.domain.repositories import HistoryRepository, MaskRepository

MAX_HISTORY_PAGE_SIZE = 100


def _require(value: str | None, label: str) -> str:
    if value is None or not value.strip():
        raise MaskValidationError(f"{label} is required.")
    return value.strip()


class MaskService:
    """Admin management of product masks and lookup of scene definitions."""

    def __init__(self, masks: MaskRepository | None = None) -> None:
        self._masks = masks or cast(MaskRepository, inject.instance(MaskRepository))

    async def list_masks(self) -> list[ProductMask]:
        return await self._masks.list_masks(public_only=True)

    async def get_mask(self, mask_id: str) -> ProductMask:
        return await self._masks.get_mask(mask_id)

    async def create_mask(
        self,
        name: str,
        definitions: Sequence[DefinitionInput] = (),
        created_by: str | None = None,
    ) -> ProductMask:
        """Create a public mask with its definitions in the given order."""
        mask = ProductMask(
            id=uuid4().hex,
            name=_require(name, "Mask name"),
            created_by=created_by,
            definitions=[
                SceneDefinition(
                    id=uuid4().hex,
                    name=_require(definition.name, "Definition name"),
                    prompt=_require(definition.prompt, "Definition prompt"),
                    sort_order=index,
                )
                for index, definition in enumerate(definitions)
            ],
        )
        return await self._masks.create_mask(mask)

    async def update_mask(self, mask_id: str, name: str) -> ProductMask:
        return await self._masks.update_mask(mask_id, name=_require(name, "Mask name"))

    async def delete_mask(self, mask_id: str) -> None:
        await self._masks.delete_mask(mask_id)

    async def add_definition(self, mask_id: str, name: str, prompt: str) -> SceneDefinition:
        return await self._masks.add_definition(
            mask_id,
            name=_require(name, "Definition name"),
            prompt=_require(prompt, "Definition prompt"),
        )

    async def update_definition(self, definition_id: str, name: str, prompt: str) -> SceneDefinition:
        return await self._masks.update_definition(
            definition_id,
            name=_require(name, "Definition name"),
            prompt=_require(prompt, "Definition prompt"),
        )

    async def delete_definition(self, definition_id: str) -> None:
        await self._masks.delete_definition(definition_id)

    async def select_definitions(
        self, mask_id: str, definition_ids: Sequence[str] | None = None
    ) -> list[SceneDefinition]:
        """
        Resolve the definitions of a batch. A subset keeps the mask's order.
        """
        mask = await self._masks.get_mask(mask_id)
        if definition_ids is None:
            return list(mask.definitions)
        known = {definition.id for definition in mask.definitions}
        for definition_id in definition_ids:
            if definition_id not in known:
                raise DefinitionNotFoundError(definition_id)
        wanted = set(definition_ids)
        return [definition for definition in mask.definitions if definition.id in wanted]


class HistoryService:
    """Read and prune access to a user's generation history."""

    def __init__(self, history: HistoryRepository | None = None) -> None:
        self._history = history or cast(HistoryRepository, inject.instance(HistoryRepository))

    async def list_history(self, user_id: str, page: int = 1, limit: int = 50) -> HistoryPage:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_HISTORY_PAGE_SIZE)
        return await self._history.list(user_id, page, limit)

    async def delete_history(self, user_id: str, history_id: str) -> None:
        await self._history.delete(user_id, history_id)
