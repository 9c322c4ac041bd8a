"""
User repository.

Data access layer for User model.
"""

from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.earning import Earning
from app.models.user import User
from app.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_username(self, username: str) -> User | None:
        """
        Get user by username.

        Args:
            username: Exact username (case-sensitive)

        Returns:
            User or None
        """
        return await self.get_by(username=username)

    async def get_referrer(self, user: User) -> User | None:
        """
        Resolve the direct referrer of a user.

        Follows referrer_id when set, otherwise falls back to the
        referred_by username recorded at sign-up.

        Returns:
            Referrer or None if the user is a root or the link dangles
        """
        if user.referrer_id is not None:
            return await self.get_by_id(user.referrer_id)
        if user.referred_by:
            return await self.get_by_username(user.referred_by)
        return None

    async def credit_balance(self, user_id: int, amount: Decimal) -> None:
        """
        Atomically add amount to balance and total_earnings.

        Done as a single UPDATE ... SET balance = balance + :amount so
        concurrent credits to the same user never lose updates.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                balance=User.balance + amount,
                total_earnings=User.total_earnings + amount,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def refresh_total_earnings(self, user_id: int) -> Decimal:
        """
        Recompute total_earnings from the user's ledger entries.

        Returns:
            The recomputed total
        """
        total_stmt = select(
            func.coalesce(func.sum(Earning.amount), 0)
        ).where(Earning.user_id == user_id)
        total = Decimal(
            str((await self.session.execute(total_stmt)).scalar() or 0)
        )

        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(total_earnings=total)
            .execution_options(synchronize_session=False)
        )
        return total

    async def add_points(self, user_id: int, points: int) -> User | None:
        """
        Atomically add points to a user.

        Returns:
            The user reloaded with its new point total, or None
        """
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(points=User.points + points)
            .execution_options(synchronize_session=False)
        )
        return await self.get_for_update(user_id)
