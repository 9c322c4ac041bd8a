"""
Shared fixtures for integration tests.

Each test gets a fresh SQLite database file with the full schema, the
default rank table and a small referral tree:

    alice (root) <- bob <- carol <- dave

plus an active package and a pending request from dave.
"""

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from app.config.business_constants import DEFAULT_RANKS
from app.config.database import create_session_maker
from app.config.settings import settings
from app.models import Base, Package, PackageRequest, Rank, User
from tests.integration.helpers import World


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Async engine on a throwaway SQLite file."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_maker(engine)


@pytest.fixture
def engine_settings():
    """Settings with retry backoff disabled."""
    return settings.model_copy(
        update={"approval_retry_delay_base": 0.0, "approval_max_attempts": 3}
    )


@pytest_asyncio.fixture
async def world(session_factory) -> World:
    async with session_factory() as session:
        async with session.begin():
            ranks = {}
            for title, points, details in DEFAULT_RANKS:
                rank = Rank(title=title, required_points=points, details=details)
                session.add(rank)
                await session.flush()
                ranks[title] = rank.id

            alice = User(username="alice", rank_id=ranks["Consultant"])
            session.add(alice)
            await session.flush()
            bob = User(
                username="bob", referrer_id=alice.id, referred_by="alice"
            )
            session.add(bob)
            await session.flush()
            carol = User(username="carol", referrer_id=bob.id, referred_by="bob")
            session.add(carol)
            await session.flush()
            dave = User(
                username="dave", referrer_id=carol.id, referred_by="carol"
            )
            session.add(dave)

            package = Package(
                name="Gold",
                price=Decimal("10000.00"),
                points=1000,
                direct_commission_rate=Decimal("0.10"),
                indirect_commission_rates={"2": "0.05", "3": "0.03", "4": "0.02"},
            )
            inactive = Package(
                name="Retired",
                price=Decimal("500.00"),
                points=50,
                direct_commission_rate=Decimal("0.10"),
                indirect_commission_rates={},
                is_active=False,
            )
            session.add_all([package, inactive])
            await session.flush()

            request = PackageRequest(user_id=dave.id, package_id=package.id)
            session.add(request)
            await session.flush()

            return World(
                alice=alice.id,
                bob=bob.id,
                carol=carol.id,
                dave=dave.id,
                package=package.id,
                inactive_package=inactive.id,
                request=request.id,
                ranks=ranks,
            )
