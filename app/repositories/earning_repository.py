"""
Earning repository.

Data access layer for Earning model. Entries are append-only.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.earning import Earning
from app.repositories.base import BaseRepository


class EarningRepository(BaseRepository[Earning]):
    """Earning repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize earning repository."""
        super().__init__(Earning, session)

    async def has_entries(self, package_request_id: int) -> bool:
        """True if any ledger entry references the request."""
        stmt = (
            select(Earning.id)
            .where(Earning.package_request_id == package_request_id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def get_by_idempotency_key(self, key: str) -> Earning | None:
        return await self.get_by(idempotency_key=key)

    async def get_for_request(self, package_request_id: int) -> list[Earning]:
        """
        Get all ledger entries written for a request.

        Args:
            package_request_id: PackageRequest ID

        Returns:
            Entries ordered by depth
        """
        stmt = (
            select(Earning)
            .where(Earning.package_request_id == package_request_id)
            .order_by(Earning.depth, Earning.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
