"""
Rank repository.

Data access layer for Rank model.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.rank import Rank
from app.repositories.base import BaseRepository
from app.services.rank.rank_resolver import RankSnapshot


class RankRepository(BaseRepository[Rank]):
    """Rank repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize rank repository."""
        super().__init__(Rank, session)

    async def get_all_ordered(self) -> list[Rank]:
        """Get all ranks, highest threshold first."""
        stmt = select(Rank).order_by(Rank.required_points.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_snapshot(self) -> RankSnapshot:
        """
        Build an immutable snapshot of the current rank table.

        Raises:
            RankConfigurationError: If the table is empty or malformed
        """
        return RankSnapshot.from_ranks(await self.get_all_ordered())
