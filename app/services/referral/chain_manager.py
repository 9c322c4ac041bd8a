"""
Referral chain management module.

Walks a buyer's upline: direct referrer first, then each referrer's
referrer, until a root, a broken link or the depth cap.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.repositories.user_repository import UserRepository
from app.services.base_service import BaseService


class ReferralChainManager(BaseService):
    """Resolves ancestor chains in the referral forest."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize chain manager."""
        super().__init__(session)
        self.user_repo = UserRepository(session)

    async def ancestors(self, username: str, max_depth: int) -> list[str]:
        """
        Get the usernames of a user's ancestors, nearest first.

        Args:
            username: Username of the buyer
            max_depth: Max number of ancestors to return

        Returns:
            Ancestor usernames; empty for unknown users and roots
        """
        user = await self.user_repo.get_by_username(username)
        if user is None:
            self.logger.warning(
                "Ancestor lookup for unknown user",
                extra={"username": username},
            )
            return []

        chain = await self.get_ancestor_chain(user, max_depth)
        return [ancestor.username for ancestor in chain]

    async def get_ancestor_chain(
        self, user: User, max_depth: int
    ) -> list[User]:
        """
        Get the ancestor chain of a user.

        Each step follows referrer_id, or the referred_by username when no
        id link is stored. A missing referrer ends the chain with a
        warning; a repeated user ends it with an error.

        Args:
            user: Buyer
            max_depth: Max number of ancestors to return

        Returns:
            Users from direct referrer (depth 1) upward
        """
        chain: list[User] = []
        if max_depth <= 0:
            return chain

        visited = {user.id}
        current = user

        while len(chain) < max_depth:
            if current.referrer_id is None and not current.referred_by:
                break

            referrer = await self.user_repo.get_referrer(current)
            depth = len(chain) + 1

            if referrer is None:
                self.logger.warning(
                    "Referral chain truncated: referrer not found",
                    extra={
                        "buyer_id": user.id,
                        "depth": depth,
                        "from_user_id": current.id,
                        "referrer_id": current.referrer_id,
                        "referred_by": current.referred_by,
                    },
                )
                break

            if referrer.id in visited:
                self.logger.error(
                    "Referral cycle detected, chain truncated",
                    extra={
                        "buyer_id": user.id,
                        "depth": depth,
                        "repeated_user_id": referrer.id,
                        "chain_ids": [u.id for u in chain],
                    },
                )
                break

            visited.add(referrer.id)
            chain.append(referrer)
            current = referrer

        self.logger.debug(
            "Referral chain retrieved",
            extra={
                "user_id": user.id,
                "max_depth": max_depth,
                "chain_length": len(chain),
            },
        )

        return chain
