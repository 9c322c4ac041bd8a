"""
Integration tests for PackageApprovalService.

Tests cover:
- Approval: ledger rows, balances, package grant, upline points and ranks
- Idempotency: double and concurrent approval, resume after a partial write
- Rejection, validation and configuration failures
- Lock contention retries, budget overruns and storage failure rollback
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import delete, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app.models import (
    ApprovalDecision,
    Earning,
    Package,
    PackageRequest,
    PackageRequestStatus,
    Rank,
    User,
)
from app.repositories.package_request_repository import (
    PackageRequestRepository,
)
from app.services.earnings.ledger_writer import EarningsLedgerWriter
from app.services.package_approval import ApprovalResult, PackageApprovalService
from app.utils.exceptions import (
    AlreadyProcessedError,
    ApprovalConfigurationError,
    ConcurrencyTimeoutError,
    LedgerConflictError,
    RequestNotFoundError,
    StorageFailureError,
    ValidationError,
)
from tests.integration.helpers import (
    count_earnings,
    create_request,
    load,
    standard_rows,
    write_ledger_rows,
)


@pytest.fixture
def service(session_factory, engine_settings):
    return PackageApprovalService(session_factory, engine_settings)


async def earnings_for(session_factory, request_id: int) -> list[Earning]:
    async with session_factory() as session:
        result = await session.execute(
            select(Earning)
            .where(Earning.package_request_id == request_id)
            .order_by(Earning.depth)
        )
        return list(result.scalars().all())


class TestApprove:
    """Successful approvals."""

    @pytest.mark.asyncio
    async def test_approve_pays_upline(self, service, session_factory, world):
        """Price 10000 at 10/5/3% pays carol 1000, bob 500, alice 300."""
        result = await service.approve_or_reject_request(
            world.request, ApprovalDecision.APPROVE, admin_notes="ok", admin_id=7
        )

        assert result.status == PackageRequestStatus.APPROVED
        assert result.resumed is False
        assert result.forfeited_amount == Decimal("200.00")
        assert [(b.user_id, b.amount) for b in result.beneficiaries] == [
            (world.carol, Decimal("1000.00")),
            (world.bob, Decimal("500.00")),
            (world.alice, Decimal("300.00")),
        ]

        rows = await earnings_for(session_factory, world.request)
        assert [(r.user_id, r.type, r.depth, r.amount) for r in rows] == [
            (world.carol, "direct_commission", 1, Decimal("1000.00")),
            (world.bob, "indirect_commission", 2, Decimal("500.00")),
            (world.alice, "indirect_commission", 3, Decimal("300.00")),
        ]
        assert all(r.idempotency_key.startswith(f"{world.request}:") for r in rows)

        request = await load(session_factory, PackageRequest, world.request)
        assert request.status == PackageRequestStatus.APPROVED
        assert request.admin_notes == "ok"
        assert request.processed_by == 7
        assert request.processed_at is not None
        assert request.approval_token is not None
        assert {r.approval_token for r in rows} == {request.approval_token}

        for user_id, amount in [
            (world.carol, Decimal("1000.00")),
            (world.bob, Decimal("500.00")),
            (world.alice, Decimal("300.00")),
        ]:
            user = await load(session_factory, User, user_id)
            assert user.balance == amount
            assert user.total_earnings == amount

    @pytest.mark.asyncio
    async def test_approve_grants_package_and_rank(
        self, service, session_factory, world
    ):
        result = await service.approve_or_reject_request(world.request, "approve")

        dave = await load(session_factory, User, world.dave)
        assert dave.current_package_id == world.package
        assert dave.package_expires_at is not None
        assert dave.points == 1000
        assert dave.rank_id == world.ranks["Manager"]
        assert dave.balance == Decimal("0")

        change = result.rank_changes[0]
        assert change.user_id == world.dave
        assert change.previous_rank_id is None
        assert change.new_rank_title == "Manager"

    @pytest.mark.asyncio
    async def test_upline_gains_points_and_rank(
        self, service, session_factory, world
    ):
        """Every ancestor gets the package points and a recomputed rank."""
        result = await service.approve_or_reject_request(world.request, "approve")

        assert [
            (c.user_id, c.previous_rank_id, c.new_rank_title, c.points)
            for c in result.rank_changes
        ] == [
            (world.dave, None, "Manager", 1000),
            (world.carol, None, "Manager", 1000),
            (world.bob, None, "Manager", 1000),
            (world.alice, world.ranks["Consultant"], "Manager", 1000),
        ]

        for user_id in (world.carol, world.bob, world.alice):
            user = await load(session_factory, User, user_id)
            assert user.points == 1000
            assert user.rank_id == world.ranks["Manager"]

    @pytest.mark.asyncio
    async def test_root_buyer_has_no_payouts(
        self, service, session_factory, world
    ):
        """A buyer without referrer gets the package and rank, nobody is paid."""
        request_id = await create_request(
            session_factory, world.alice, world.package
        )

        result = await service.approve_or_reject_request(request_id, "approve")

        assert result.status == PackageRequestStatus.APPROVED
        assert result.beneficiaries == []
        assert await count_earnings(session_factory, request_id) == 0

        alice = await load(session_factory, User, world.alice)
        assert alice.points == 1000
        assert alice.rank_id == world.ranks["Manager"]
        assert [c.previous_rank_id for c in result.rank_changes] == [
            world.ranks["Consultant"]
        ]

    @pytest.mark.asyncio
    async def test_second_approval_is_rejected_without_duplicates(
        self, service, session_factory, world
    ):
        await service.approve_or_reject_request(world.request, "approve")

        with pytest.raises(AlreadyProcessedError) as exc_info:
            await service.approve_or_reject_request(world.request, "approve")

        assert exc_info.value.status == PackageRequestStatus.APPROVED
        assert await count_earnings(session_factory, world.request) == 3
        carol = await load(session_factory, User, world.carol)
        assert carol.balance == Decimal("1000.00")
        dave = await load(session_factory, User, world.dave)
        assert dave.points == 1000

    @pytest.mark.asyncio
    async def test_total_earnings_accumulate_across_requests(
        self, service, session_factory, world
    ):
        second = await create_request(session_factory, world.dave, world.package)

        await service.approve_or_reject_request(world.request, "approve")
        await service.approve_or_reject_request(second, "approve")

        carol = await load(session_factory, User, world.carol)
        assert carol.balance == Decimal("2000.00")
        assert carol.total_earnings == Decimal("2000.00")
        dave = await load(session_factory, User, world.dave)
        assert dave.points == 2000
        assert dave.rank_id == world.ranks["Sapphire Manager"]
        carol = await load(session_factory, User, world.carol)
        assert carol.points == 2000
        assert carol.rank_id == world.ranks["Sapphire Manager"]

    @pytest.mark.asyncio
    async def test_resume_after_partial_write(
        self, service, session_factory, world
    ):
        """Existing ledger rows are reused; nothing is written or credited twice."""
        await write_ledger_rows(
            session_factory, world.request, standard_rows(world)
        )

        result = await service.approve_or_reject_request(world.request, "approve")

        assert result.resumed is True
        assert result.status == PackageRequestStatus.APPROVED
        assert len(result.beneficiaries) == 3
        assert await count_earnings(session_factory, world.request) == 3

        carol = await load(session_factory, User, world.carol)
        assert carol.balance == Decimal("0")
        assert carol.total_earnings == Decimal("1000.00")
        assert carol.points == 0
        dave = await load(session_factory, User, world.dave)
        assert dave.points == 1000
        assert dave.current_package_id == world.package

    @pytest.mark.asyncio
    async def test_concurrent_approvals_apply_once(
        self, service, session_factory, world
    ):
        results = await asyncio.gather(
            service.approve_or_reject_request(world.request, "approve"),
            service.approve_or_reject_request(world.request, "approve"),
            return_exceptions=True,
        )

        approved = [r for r in results if isinstance(r, ApprovalResult)]
        refused = [r for r in results if isinstance(r, AlreadyProcessedError)]
        assert len(approved) == 1
        assert len(refused) == 1
        assert approved[0].status == PackageRequestStatus.APPROVED
        assert refused[0].status == PackageRequestStatus.APPROVED

        assert await count_earnings(session_factory, world.request) == 3
        carol = await load(session_factory, User, world.carol)
        assert carol.balance == Decimal("1000.00")
        assert carol.points == 1000
        dave = await load(session_factory, User, world.dave)
        assert dave.points == 1000


class TestRejectAndValidate:
    """Rejections and requests that cannot be approved."""

    @pytest.mark.asyncio
    async def test_reject(self, service, session_factory, world):
        result = await service.approve_or_reject_request(
            world.request, ApprovalDecision.REJECT, admin_notes="no", admin_id=3
        )

        assert result.status == PackageRequestStatus.FAILED
        request = await load(session_factory, PackageRequest, world.request)
        assert request.status == PackageRequestStatus.FAILED
        assert request.failure_reason == "rejected by administrator"
        assert request.admin_notes == "no"
        assert await count_earnings(session_factory) == 0

        with pytest.raises(AlreadyProcessedError) as exc_info:
            await service.approve_or_reject_request(world.request, "approve")
        assert exc_info.value.status == PackageRequestStatus.FAILED

    @pytest.mark.asyncio
    async def test_reject_with_ledger_rows_refused(
        self, service, session_factory, world
    ):
        await write_ledger_rows(
            session_factory, world.request, standard_rows(world)[:1]
        )

        with pytest.raises(LedgerConflictError):
            await service.approve_or_reject_request(world.request, "reject")

        request = await load(session_factory, PackageRequest, world.request)
        assert request.status == PackageRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_inactive_package_marks_failed(
        self, service, session_factory, world
    ):
        request_id = await create_request(
            session_factory, world.dave, world.inactive_package
        )

        with pytest.raises(ValidationError, match="package is inactive"):
            await service.approve_or_reject_request(request_id, "approve")

        request = await load(session_factory, PackageRequest, request_id)
        assert request.status == PackageRequestStatus.FAILED
        assert request.failure_reason == "package is inactive"
        assert await count_earnings(session_factory) == 0

        with pytest.raises(AlreadyProcessedError):
            await service.approve_or_reject_request(request_id, "approve")

    @pytest.mark.asyncio
    async def test_banned_buyer_marks_failed(
        self, service, session_factory, world
    ):
        async with session_factory() as session:
            async with session.begin():
                dave = await session.get(User, world.dave)
                dave.is_banned = True

        with pytest.raises(ValidationError):
            await service.approve_or_reject_request(world.request, "approve")

        request = await load(session_factory, PackageRequest, world.request)
        assert request.status == PackageRequestStatus.FAILED
        assert request.failure_reason == "buyer account is banned"
        carol = await load(session_factory, User, world.carol)
        assert carol.balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_invalid_request_with_ledger_rows_stays_pending(
        self, service, session_factory, world
    ):
        """Ledger rows on a request that no longer validates need an operator."""
        await write_ledger_rows(
            session_factory, world.request, standard_rows(world)
        )
        async with session_factory() as session:
            async with session.begin():
                package = await session.get(Package, world.package)
                package.is_active = False

        with pytest.raises(LedgerConflictError) as exc_info:
            await service.approve_or_reject_request(world.request, "approve")

        assert exc_info.value.request_id == world.request
        assert "package is inactive" in str(exc_info.value)
        request = await load(session_factory, PackageRequest, world.request)
        assert request.status == PackageRequestStatus.PENDING
        assert request.failure_reason is None
        assert await count_earnings(session_factory, world.request) == 3

    @pytest.mark.asyncio
    async def test_bad_commission_schedule_is_configuration_error(
        self, service, session_factory, world
    ):
        async with session_factory() as session:
            async with session.begin():
                package = Package(
                    name="Broken",
                    price=Decimal("1000.00"),
                    points=100,
                    direct_commission_rate=Decimal("0.10"),
                    indirect_commission_rates={"2": "1.5"},
                )
                session.add(package)
                await session.flush()
                package_id = package.id
        request_id = await create_request(session_factory, world.dave, package_id)

        with pytest.raises(ApprovalConfigurationError) as exc_info:
            await service.approve_or_reject_request(request_id, "approve")

        assert exc_info.value.request_id == request_id
        request = await load(session_factory, PackageRequest, request_id)
        assert request.status == PackageRequestStatus.PENDING
        assert await count_earnings(session_factory) == 0

    @pytest.mark.asyncio
    async def test_empty_rank_table_is_configuration_error(
        self, service, session_factory, world
    ):
        async with session_factory() as session:
            async with session.begin():
                await session.execute(update(User).values(rank_id=None))
                await session.execute(delete(Rank))

        with pytest.raises(ApprovalConfigurationError) as exc_info:
            await service.approve_or_reject_request(world.request, "approve")

        assert exc_info.value.request_id == world.request
        request = await load(session_factory, PackageRequest, world.request)
        assert request.status == PackageRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_request(self, service, world):
        with pytest.raises(RequestNotFoundError):
            await service.approve_or_reject_request(9999, "approve")

    @pytest.mark.asyncio
    async def test_unknown_decision(self, service, world):
        with pytest.raises(ValueError):
            await service.approve_or_reject_request(world.request, "maybe")


class TestFailureRollback:
    """Transient and storage failures leave the request pending."""

    @pytest.mark.asyncio
    async def test_lock_contention_exhausts_retries(
        self, service, session_factory, world, monkeypatch
    ):
        calls = []

        async def locked(self, id):
            calls.append(id)
            raise OperationalError(
                "SELECT ... FOR UPDATE", {}, Exception("could not obtain lock on row")
            )

        monkeypatch.setattr(PackageRequestRepository, "get_for_update", locked)

        with pytest.raises(ConcurrencyTimeoutError):
            await service.approve_or_reject_request(world.request, "approve")

        monkeypatch.undo()
        assert len(calls) == 3
        request = await load(session_factory, PackageRequest, world.request)
        assert request.status == PackageRequestStatus.PENDING
        assert await count_earnings(session_factory) == 0

    @pytest.mark.asyncio
    async def test_lock_contention_recovers(
        self, service, session_factory, world, monkeypatch
    ):
        """A lock released before the last attempt lets the approval finish."""
        original = PackageRequestRepository.get_for_update
        calls = []

        async def flaky(self, id):
            calls.append(id)
            if len(calls) == 1:
                raise OperationalError(
                    "SELECT ... FOR UPDATE", {}, Exception("lock_not_available")
                )
            return await original(self, id)

        monkeypatch.setattr(PackageRequestRepository, "get_for_update", flaky)

        result = await service.approve_or_reject_request(world.request, "approve")

        assert result.status == PackageRequestStatus.APPROVED
        assert len(calls) == 2
        assert await count_earnings(session_factory, world.request) == 3

    @pytest.mark.asyncio
    async def test_storage_failure_rolls_back_everything(
        self, service, session_factory, world, monkeypatch
    ):
        original = EarningsLedgerWriter.write

        async def write_then_fail(self, request, payouts, approval_token):
            await original(self, request, payouts, approval_token)
            raise SQLAlchemyError("connection reset")

        monkeypatch.setattr(EarningsLedgerWriter, "write", write_then_fail)

        with pytest.raises(StorageFailureError):
            await service.approve_or_reject_request(world.request, "approve")

        request = await load(session_factory, PackageRequest, world.request)
        assert request.status == PackageRequestStatus.PENDING
        assert await count_earnings(session_factory) == 0
        carol = await load(session_factory, User, world.carol)
        assert carol.balance == Decimal("0")
        assert carol.points == 0
        dave = await load(session_factory, User, world.dave)
        assert dave.points == 0
        assert dave.current_package_id is None

    @pytest.mark.asyncio
    async def test_statement_timeout_is_not_retried(
        self, service, session_factory, world, monkeypatch
    ):
        calls = []

        async def cancelled(self, id):
            calls.append(id)
            raise OperationalError(
                "SELECT ... FOR UPDATE",
                {},
                Exception("canceling statement due to statement timeout"),
            )

        monkeypatch.setattr(PackageRequestRepository, "get_for_update", cancelled)

        with pytest.raises(ConcurrencyTimeoutError, match="Execution budget"):
            await service.approve_or_reject_request(world.request, "approve")

        monkeypatch.undo()
        assert len(calls) == 1
        request = await load(session_factory, PackageRequest, world.request)
        assert request.status == PackageRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_execution_budget_exhausted_before_ledger_writes(
        self, session_factory, engine_settings, world
    ):
        tight = engine_settings.model_copy(
            update={
                "approval_execution_budget_seconds": 1e-9,
                "approval_lock_wait_seconds": 1e-10,
            }
        )
        service = PackageApprovalService(session_factory, tight)

        with pytest.raises(ConcurrencyTimeoutError):
            await service.approve_or_reject_request(world.request, "approve")

        request = await load(session_factory, PackageRequest, world.request)
        assert request.status == PackageRequestStatus.PENDING
        assert await count_earnings(session_factory) == 0
