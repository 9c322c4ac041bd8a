"""
Earnings ledger writer.

Appends commission entries for a package request and credits the
beneficiaries. Works inside the caller's transaction.
"""

from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.earning import Earning
from app.models.enums import EarningType
from app.models.package_request import PackageRequest
from app.repositories.earning_repository import EarningRepository
from app.repositories.user_repository import UserRepository
from app.services.base_service import BaseService
from app.services.commission.commission_calculator import Payout


def describe_payout(payout: Payout, package_request_id: int) -> str:
    """Human-readable ledger description."""
    if payout.type == EarningType.DIRECT_COMMISSION:
        return (
            "Direct commission from package approval "
            f"(request #{package_request_id})"
        )
    return (
        f"Level {payout.depth} indirect commission from package approval "
        f"(request #{package_request_id})"
    )


class EarningsLedgerWriter(BaseService):
    """Writes immutable Earning rows, at most one per idempotency key."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger writer."""
        super().__init__(session)
        self.earning_repo = EarningRepository(session)
        self.user_repo = UserRepository(session)

    async def has_entries(self, package_request_id: int) -> bool:
        """True if the request already has ledger evidence."""
        return await self.earning_repo.has_entries(package_request_id)

    async def write(
        self,
        request: PackageRequest,
        payouts: Iterable[Payout],
        approval_token: str,
    ) -> list[Earning]:
        """
        Write ledger rows for payouts and credit beneficiaries.

        A payout whose idempotency key already exists is skipped and its
        beneficiary is not credited again.

        Args:
            request: Package request being approved (locked by caller)
            payouts: Payouts from the commission calculator
            approval_token: Token identifying this unit of work

        Returns:
            Rows written by this call
        """
        written: list[Earning] = []

        for payout in payouts:
            user_id = payout.beneficiary.user_id
            key = Earning.build_idempotency_key(
                request.id, user_id, payout.type.value
            )

            existing = await self.earning_repo.get_by_idempotency_key(key)
            if existing is not None:
                self.logger.info(
                    "Ledger row already present, skipped",
                    extra={
                        "package_request_id": request.id,
                        "user_id": user_id,
                        "idempotency_key": key,
                        "earning_id": existing.id,
                    },
                )
                continue

            earning = Earning(
                user_id=user_id,
                package_request_id=request.id,
                type=payout.type.value,
                depth=payout.depth,
                amount=payout.amount,
                description=describe_payout(payout, request.id),
                idempotency_key=key,
                approval_token=approval_token,
            )
            self.session.add(earning)
            await self.session.flush()

            await self.user_repo.credit_balance(user_id, payout.amount)
            written.append(earning)

            self.logger.info(
                "Ledger row written",
                extra={
                    "package_request_id": request.id,
                    "earning_id": earning.id,
                    "user_id": user_id,
                    "username": payout.beneficiary.username,
                    "type": payout.type.value,
                    "depth": payout.depth,
                    "amount": str(payout.amount),
                },
            )

        return written
