"""
PackageRequest repository.

Data access layer for PackageRequest model.
"""

from datetime import UTC, datetime

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.earning import Earning
from app.models.enums import PackageRequestStatus
from app.models.package_request import PackageRequest
from app.repositories.base import BaseRepository


class PackageRequestRepository(BaseRepository[PackageRequest]):
    """PackageRequest repository with status queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize package request repository."""
        super().__init__(PackageRequest, session)

    async def find_failed_with_earnings_ids(
        self, after_id: int = 0, limit: int = 500
    ) -> list[int]:
        """
        Find failed requests that nevertheless have ledger entries.

        Only IDs are returned; callers re-read and lock each request in
        its own transaction.

        Args:
            after_id: Only return IDs greater than this one
            limit: Max number of request IDs

        Returns:
            Request IDs, oldest first
        """
        has_earnings = exists().where(
            Earning.package_request_id == PackageRequest.id
        )
        stmt = (
            select(PackageRequest.id)
            .where(
                PackageRequest.id > after_id,
                PackageRequest.status == PackageRequestStatus.FAILED.value,
                has_earnings,
            )
            .order_by(PackageRequest.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def claim_pending(self, request_id: int) -> bool:
        """
        Take write ownership of a pending request.

        Runs UPDATE ... WHERE status = 'pending', which waits for any
        concurrent writer and then sees its committed status. Backends
        without row locks rely on this to serialize approvals.

        Returns:
            True if the request is still pending
        """
        result = await self.session.execute(
            update(PackageRequest)
            .where(
                PackageRequest.id == request_id,
                PackageRequest.status == PackageRequestStatus.PENDING.value,
            )
            .values(updated_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
