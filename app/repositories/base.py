"""
Base repository.

Generic data access shared by all repositories. Repositories never commit;
the caller owns the transaction.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic read/insert operations.

    No generic delete: ledger rows are append-only.

    Example:
        class RankRepository(BaseRepository[Rank]):
            def __init__(self, session: AsyncSession):
                super().__init__(Rank, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        self.model = model
        self.session = session

    async def get_by_id(self, id: int) -> ModelType | None:
        """Get entity by primary key (identity map first)."""
        return await self.session.get(self.model, id)

    async def get_for_update(self, id: int) -> ModelType | None:
        """
        Get entity by ID holding a row lock until the transaction ends.

        Uses SELECT ... FOR UPDATE, so the lock wait is bounded by the
        session's lock_timeout. Backends without row locks ignore the
        clause.

        Args:
            id: Entity ID

        Returns:
            Locked entity or None if not found
        """
        stmt = (
            select(self.model)
            .where(self.model.id == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by(self, **filters: Any) -> ModelType | None:
        """Get single entity by column filters."""
        stmt = select(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_all(
        self,
        limit: int | None = None,
        offset: int | None = None,
        **filters: Any,
    ) -> list[ModelType]:
        """
        Find all entities matching filters, ordered by ID.

        Args:
            limit: Max number of results
            offset: Number of results to skip
            **filters: Column filters

        Returns:
            List of matching entities
        """
        stmt = (
            select(self.model)
            .filter_by(**filters)
            .order_by(self.model.id)
        )

        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_by(self, **filters: Any) -> list[ModelType]:
        return await self.find_all(**filters)

    async def create(self, **data: Any) -> ModelType:
        """Insert a new entity and flush so its ID is assigned."""
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def count(self, **filters: Any) -> int:
        """Count entities matching filters."""
        stmt = select(func.count()).select_from(self.model)

        if filters:
            stmt = stmt.filter_by(**filters)

        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def exists(self, **filters: Any) -> bool:
        return await self.count(**filters) > 0
