from __future__ import annotations

from src.amazongen.domain.models.history import HistoryEntry
from src.amazongen.domain.models.mask import ProductMask, SceneDefinition
from src.amazongen.domain.models.model_ref import ModelRef, Provider
from src.amazongen.infrastructure.database.orm import HistoryRow, MaskRow, SceneDefinitionRow


class OrmMapper:
    @staticmethod
    def to_mask_row(mask: ProductMask) -> MaskRow:
        row = MaskRow(
            id=mask.id,
            name=mask.name,
            is_public=mask.is_public,
            created_by=mask.created_by,
            created_at=mask.created_at,
            updated_at=mask.updated_at,
        )
        row.definitions = [
            OrmMapper.to_definition_row(mask.id, definition) for definition in mask.definitions
        ]
        return row

    @staticmethod
    def to_definition_row(mask_id: str, definition: SceneDefinition) -> SceneDefinitionRow:
        return SceneDefinitionRow(
            id=definition.id,
            mask_id=mask_id,
            name=definition.name,
            prompt=definition.prompt,
            sort_order=definition.sort_order,
        )

    @staticmethod
    def to_domain_mask(row: MaskRow) -> ProductMask:
        return ProductMask(
            id=row.id,
            name=row.name,
            is_public=row.is_public,
            created_by=row.created_by,
            definitions=[OrmMapper.to_domain_definition(item) for item in row.definitions],
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def to_domain_definition(row: SceneDefinitionRow) -> SceneDefinition:
        return SceneDefinition(
            id=row.id,
            name=row.name,
            prompt=row.prompt,
            sort_order=row.sort_order,
        )

    @staticmethod
    def to_history_row(history_id: str, user_id: str, entry: HistoryEntry) -> HistoryRow:
        return HistoryRow(
            id=history_id,
            user_id=user_id,
            task_id=entry.task_id,
            mask_id=entry.mask_id,
            definition_id=entry.definition_id,
            definition_name=entry.definition_name,
            source_image=entry.source_image,
            image_result=entry.image_result,
            prompt=entry.prompt,
            model_provider=entry.model.provider.value,
            model_name=entry.model.name,
            created_at=entry.created_at,
        )

    @staticmethod
    def to_domain_history(row: HistoryRow) -> HistoryEntry:
        return HistoryEntry(
            id=row.id,
            user_id=row.user_id,
            task_id=row.task_id,
            mask_id=row.mask_id,
            definition_id=row.definition_id,
            definition_name=row.definition_name,
            source_image=row.source_image,
            image_result=row.image_result,
            prompt=row.prompt,
            model=ModelRef(provider=Provider(row.model_provider), name=row.model_name),
            created_at=row.created_at,
        )
