from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload

from src.amazongen.domain.exceptions import (
    DefinitionNotFoundError,
    HistoryAccessDeniedError,
    HistoryNotFoundError,
    MaskNotFoundError,
)
from src.amazongen.domain.models.history import HistoryEntry, HistoryPage
from src.amazongen.domain.models.mask import ProductMask, SceneDefinition
from src.amazongen.domain.repositories import HistoryRepository, MaskRepository
from src.amazongen.infrastructure.database.mappers import OrmMapper
from src.amazongen.infrastructure.database.orm import (
    DatabaseOrm,
    HistoryRow,
    MaskRow,
    SceneDefinitionRow,
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SqlMaskRepository(MaskRepository):
    """Mask and scene definition storage using SQLAlchemy async sessions."""

    def __init__(self, orm: DatabaseOrm) -> None:
        self._orm = orm

    async def list_masks(self, *, public_only: bool = True) -> list[ProductMask]:
        statement = select(MaskRow).options(selectinload(MaskRow.definitions))
        if public_only:
            statement = statement.where(MaskRow.is_public.is_(True))
        statement = statement.order_by(MaskRow.created_at.desc(), MaskRow.name)

        async with self._orm.session_factory() as session:
            result = await session.execute(statement)
            rows = result.scalars().all()
        return [OrmMapper.to_domain_mask(row) for row in rows]

    async def get_mask(self, mask_id: str) -> ProductMask:
        async with self._orm.session_factory() as session:
            row = await self._load_mask(session, mask_id)
        return OrmMapper.to_domain_mask(row)

    async def create_mask(self, mask: ProductMask) -> ProductMask:
        now = _utc_now()
        mask = mask.model_copy(
            update={"created_at": mask.created_at or now, "updated_at": mask.updated_at or now}
        )
        async with self._orm.session_factory() as session:
            async with session.begin():
                # Mask and definitions land in one transaction.
                session.add(OrmMapper.to_mask_row(mask))
        return mask

    async def update_mask(self, mask_id: str, *, name: str) -> ProductMask:
        async with self._orm.session_factory() as session:
            async with session.begin():
                row = await self._load_mask(session, mask_id)
                row.name = name
                row.updated_at = _utc_now()
            return OrmMapper.to_domain_mask(row)

    async def delete_mask(self, mask_id: str) -> None:
        async with self._orm.session_factory() as session:
            async with session.begin():
                # Definitions must be loaded for the ORM cascade to remove them.
                row = await self._load_mask(session, mask_id)
                await session.delete(row)

    async def add_definition(self, mask_id: str, *, name: str, prompt: str) -> SceneDefinition:
        async with self._orm.session_factory() as session:
            async with session.begin():
                mask_row = await session.get(MaskRow, mask_id)
                if mask_row is None:
                    raise MaskNotFoundError(mask_id)
                result = await session.execute(
                    select(func.max(SceneDefinitionRow.sort_order)).where(
                        SceneDefinitionRow.mask_id == mask_id
                    )
                )
                last_order = result.scalar_one_or_none()
                row = SceneDefinitionRow(
                    id=uuid4().hex,
                    mask_id=mask_id,
                    name=name,
                    prompt=prompt,
                    sort_order=0 if last_order is None else last_order + 1,
                )
                session.add(row)
                mask_row.updated_at = _utc_now()
        return OrmMapper.to_domain_definition(row)

    async def update_definition(
        self, definition_id: str, *, name: str, prompt: str
    ) -> SceneDefinition:
        async with self._orm.session_factory() as session:
            async with session.begin():
                row = await session.get(SceneDefinitionRow, definition_id)
                if row is None:
                    raise DefinitionNotFoundError(definition_id)
                row.name = name
                row.prompt = prompt
        return OrmMapper.to_domain_definition(row)

    async def delete_definition(self, definition_id: str) -> None:
        async with self._orm.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(SceneDefinitionRow).where(SceneDefinitionRow.id == definition_id)
                )
                if result.rowcount == 0:
                    raise DefinitionNotFoundError(definition_id)

    @staticmethod
    async def _load_mask(session, mask_id: str) -> MaskRow:
        result = await session.execute(
            select(MaskRow).options(selectinload(MaskRow.definitions)).where(MaskRow.id == mask_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise MaskNotFoundError(mask_id)
        return row


class SqlHistoryRepository(HistoryRepository):
    """Generation history storage using SQLAlchemy async sessions."""

    def __init__(self, orm: DatabaseOrm) -> None:
        self._orm = orm

    async def append(self, user_id: str, entry: HistoryEntry) -> str:
        """Persist a snapshot and return its id. A task is recorded at most once."""
        async with self._orm.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(HistoryRow.id).where(HistoryRow.task_id == entry.task_id)
                )
                existing = result.scalar_one_or_none()
                if existing is not None:
                    return existing
                history_id = uuid4().hex
                session.add(OrmMapper.to_history_row(history_id, user_id, entry))
        return history_id

    async def list(self, user_id: str, page: int, page_size: int) -> HistoryPage:
        """Return one page of the user's history, newest first."""
        async with self._orm.session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(HistoryRow).where(HistoryRow.user_id == user_id)
            )
            result = await session.execute(
                select(HistoryRow)
                .where(HistoryRow.user_id == user_id)
                .order_by(HistoryRow.created_at.desc(), HistoryRow.id)
                .limit(page_size)
                .offset((page - 1) * page_size)
            )
            rows = result.scalars().all()

        return HistoryPage(
            items=[OrmMapper.to_domain_history(row) for row in rows],
            page=page,
            limit=page_size,
            total=total or 0,
        )

    async def delete(self, user_id: str, history_id: str) -> None:
        """Delete an entry after enforcing ownership."""
        async with self._orm.session_factory() as session:
            async with session.begin():
                row = await session.get(HistoryRow, history_id)
                if row is None:
                    raise HistoryNotFoundError(history_id)
                if row.user_id != user_id:
                    raise HistoryAccessDeniedError(history_id, user_id)
                await session.delete(row)
