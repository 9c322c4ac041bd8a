"""Helpers for integration tests: seeded IDs and direct ledger access."""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select

from app.models import Earning, EarningType, PackageRequest, PackageRequestStatus


@dataclass
class World:
    """IDs of the seeded rows."""

    alice: int
    bob: int
    carol: int
    dave: int
    package: int
    inactive_package: int
    request: int
    ranks: dict[str, int]


async def create_request(
    session_factory,
    user_id: int,
    package_id: int,
    status: PackageRequestStatus = PackageRequestStatus.PENDING,
) -> int:
    async with session_factory() as session:
        async with session.begin():
            request = PackageRequest(
                user_id=user_id, package_id=package_id, status=status.value
            )
            session.add(request)
            await session.flush()
            return request.id


async def write_ledger_rows(
    session_factory,
    request_id: int,
    rows: list[tuple[int, EarningType, int, Decimal]],
) -> None:
    """Insert ledger rows as a previous approval attempt would have."""
    async with session_factory() as session:
        async with session.begin():
            for user_id, earning_type, depth, amount in rows:
                session.add(
                    Earning(
                        user_id=user_id,
                        package_request_id=request_id,
                        type=earning_type.value,
                        depth=depth,
                        amount=amount,
                        description=f"commission for request #{request_id}",
                        idempotency_key=Earning.build_idempotency_key(
                            request_id, user_id, earning_type.value
                        ),
                    )
                )


def standard_rows(world: World) -> list[tuple[int, EarningType, int, Decimal]]:
    """Ledger of dave's Gold purchase."""
    return [
        (world.carol, EarningType.DIRECT_COMMISSION, 1, Decimal("1000.00")),
        (world.bob, EarningType.INDIRECT_COMMISSION, 2, Decimal("500.00")),
        (world.alice, EarningType.INDIRECT_COMMISSION, 3, Decimal("300.00")),
    ]


async def count_earnings(session_factory, request_id: int | None = None) -> int:
    async with session_factory() as session:
        stmt = select(func.count()).select_from(Earning)
        if request_id is not None:
            stmt = stmt.where(Earning.package_request_id == request_id)
        return (await session.execute(stmt)).scalar() or 0


async def load(session_factory, model, id: int):
    async with session_factory() as session:
        return await session.get(model, id)
