"""Integration tests for ReferralChainManager."""

import pytest

from app.models import User
from app.services.referral import ReferralChainManager


async def add_user(session_factory, username: str, **fields) -> int:
    async with session_factory() as session:
        async with session.begin():
            user = User(username=username, **fields)
            session.add(user)
            await session.flush()
            return user.id


class TestAncestors:

    @pytest.mark.asyncio
    async def test_full_chain_nearest_first(self, session_factory, world):
        async with session_factory() as session:
            chain = await ReferralChainManager(session).ancestors("dave", 10)

        assert chain == ["carol", "bob", "alice"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "max_depth,expected",
        [(0, []), (-1, []), (1, ["carol"]), (2, ["carol", "bob"])],
    )
    async def test_depth_cap(self, session_factory, world, max_depth, expected):
        async with session_factory() as session:
            chain = await ReferralChainManager(session).ancestors(
                "dave", max_depth
            )

        assert chain == expected

    @pytest.mark.asyncio
    async def test_root_and_unknown_user(self, session_factory, world):
        async with session_factory() as session:
            manager = ReferralChainManager(session)
            assert await manager.ancestors("alice", 5) == []
            assert await manager.ancestors("nobody", 5) == []

    @pytest.mark.asyncio
    async def test_username_link_without_id(self, session_factory, world):
        """Legacy rows linked only by referred_by are followed."""
        await add_user(session_factory, "erin", referred_by="bob")

        async with session_factory() as session:
            chain = await ReferralChainManager(session).ancestors("erin", 10)

        assert chain == ["bob", "alice"]

    @pytest.mark.asyncio
    async def test_dangling_reference_truncates(
        self, session_factory, world, log_records
    ):
        await add_user(session_factory, "frank", referred_by="ghost")
        await add_user(
            session_factory, "gina", referrer_id=None, referred_by="frank"
        )

        async with session_factory() as session:
            chain = await ReferralChainManager(session).ancestors("gina", 10)

        assert chain == ["frank"]
        warnings = [
            r for r in log_records
            if r["message"] == "Referral chain truncated: referrer not found"
        ]
        assert len(warnings) == 1
        assert warnings[0]["level"].name == "WARNING"
        assert warnings[0]["extra"]["extra"]["referred_by"] == "ghost"

    @pytest.mark.asyncio
    async def test_cycle_truncates(self, session_factory, world, log_records):
        x_id = await add_user(session_factory, "xavier")
        y_id = await add_user(session_factory, "yusuf", referrer_id=x_id)
        async with session_factory() as session:
            async with session.begin():
                xavier = await session.get(User, x_id)
                xavier.referrer_id = y_id
        await add_user(session_factory, "zoe", referrer_id=x_id)

        async with session_factory() as session:
            manager = ReferralChainManager(session)
            assert await manager.ancestors("zoe", 10) == ["xavier", "yusuf"]
            assert await manager.ancestors("xavier", 10) == ["yusuf"]

        errors = [
            r for r in log_records
            if r["message"] == "Referral cycle detected, chain truncated"
        ]
        assert [r["level"].name for r in errors] == ["ERROR", "ERROR"]
        assert errors[0]["extra"]["extra"]["repeated_user_id"] == x_id

    @pytest.mark.asyncio
    async def test_get_ancestor_chain_returns_users(self, session_factory, world):
        async with session_factory() as session:
            dave = await session.get(User, world.dave)
            chain = await ReferralChainManager(session).get_ancestor_chain(
                dave, 3
            )

        assert [u.id for u in chain] == [world.carol, world.bob, world.alice]
