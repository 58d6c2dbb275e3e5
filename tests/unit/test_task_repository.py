"""Tests for TaskRepository state transitions and settlement.

Covers the guarded claim, log aggregation, finalize() refunds and the
recovery of tasks left in processing by a dead worker.
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creditflow.models import Task, User
from creditflow.repositories.credit_repository import CreditBalance, CreditRepository
from creditflow.repositories.task_repository import TaskRepository
from tests.conftest import create_user

# =============================================================================
# Helpers
# =============================================================================


async def _reserve_task(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    quantity: int = 3,
    created_at: datetime | None = None,
) -> Task:
    """Debit `quantity` credits and insert a pending task, then commit."""
    assert await CreditRepository.atomic_debit(db, user_id=user_id, amount=quantity)
    task = await TaskRepository.create(
        db,
        user_id=user_id,
        invite_link="https://example.com/invite/abc",
        quantity=quantity,
    )
    if created_at is not None:
        task.created_at = created_at
        await db.flush()
    await db.commit()
    return task


async def _settle_log(
    db: AsyncSession,
    task_id: uuid.UUID,
    account_number: int,
    status: str,
) -> None:
    log = await TaskRepository.create_log(
        db, task_id=task_id, account_number=account_number
    )
    now = datetime.now(UTC)
    await TaskRepository.update_log(
        db, log.id, status=status, attempts=1, started_at=now, completed_at=now
    )


# =============================================================================
# create / read
# =============================================================================


class TestCreate:
    async def test_new_task_is_pending_with_reservation(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        task = await _reserve_task(db_session, test_user.id, quantity=4)

        assert task.status == "pending"
        assert task.credits_used == 4
        assert task.quantity_completed == 0
        assert task.quantity_failed == 0

    async def test_get_for_user_hides_other_users_tasks(
        self, db_session: AsyncSession, test_user: User, user_b: User
    ) -> None:
        task = await _reserve_task(db_session, test_user.id)

        assert await TaskRepository.get_for_user(db_session, task.id, test_user.id)
        assert await TaskRepository.get_for_user(db_session, task.id, user_b.id) is None

    async def test_list_by_user_newest_first_with_status_filter(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        base = datetime(2026, 1, 1, tzinfo=UTC)
        old = await _reserve_task(db_session, test_user.id, quantity=1, created_at=base)
        new = await _reserve_task(
            db_session, test_user.id, quantity=1, created_at=base + timedelta(hours=1)
        )
        await TaskRepository.transition(
            db_session, old.id, from_status="pending", to_status="cancelled"
        )

        tasks, total = await TaskRepository.list_by_user(db_session, test_user.id)
        assert total == 2
        assert [t.id for t in tasks] == [new.id, old.id]

        pending, pending_total = await TaskRepository.list_by_user(
            db_session, test_user.id, status="pending"
        )
        assert pending_total == 1
        assert [t.id for t in pending] == [new.id]


# =============================================================================
# transition / claim
# =============================================================================


class TestTransition:
    async def test_guarded_transition_applies_once(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        task = await _reserve_task(db_session, test_user.id)

        first = await TaskRepository.transition(
            db_session, task.id, from_status="pending", to_status="processing"
        )
        second = await TaskRepository.transition(
            db_session, task.id, from_status="pending", to_status="processing"
        )

        assert (first, second) == (True, False)


class TestClaimNextPending:
    async def test_claims_oldest_pending(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        base = datetime(2026, 1, 1, tzinfo=UTC)
        newer = await _reserve_task(
            db_session, test_user.id, quantity=1, created_at=base + timedelta(minutes=5)
        )
        older = await _reserve_task(
            db_session, test_user.id, quantity=1, created_at=base
        )

        claimed = await TaskRepository.claim_next_pending(db_session)

        assert claimed is not None
        assert claimed.id == older.id
        assert claimed.status == "processing"
        assert claimed.started_at is not None
        still_pending = await TaskRepository.get_by_id(db_session, newer.id)
        assert still_pending is not None
        assert still_pending.status == "pending"

    async def test_empty_queue_returns_none(self, db_session: AsyncSession) -> None:
        assert await TaskRepository.claim_next_pending(db_session) is None

    async def test_task_is_never_claimed_twice(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        test_user: User,
    ) -> None:
        task = await _reserve_task(db_session, test_user.id)

        async with session_factory() as first:
            claimed = await TaskRepository.claim_next_pending(first)
            await first.commit()
        async with session_factory() as second:
            again = await TaskRepository.claim_next_pending(second)
            await second.commit()

        assert claimed is not None
        assert claimed.id == task.id
        assert again is None

    async def test_cancelled_task_is_not_claimable(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        task = await _reserve_task(db_session, test_user.id)
        await TaskRepository.transition(
            db_session, task.id, from_status="pending", to_status="cancelled"
        )

        assert await TaskRepository.claim_next_pending(db_session) is None


# =============================================================================
# logs
# =============================================================================


class TestLogs:
    async def test_count_and_refresh_counters(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        task = await _reserve_task(db_session, test_user.id, quantity=4)
        await _settle_log(db_session, task.id, 1, "success")
        await _settle_log(db_session, task.id, 2, "failed")
        await _settle_log(db_session, task.id, 3, "success")
        # Slot 4 created but never started
        await TaskRepository.create_log(db_session, task_id=task.id, account_number=4)

        counts = await TaskRepository.refresh_counters(db_session, task.id)

        assert (counts.success, counts.failed, counts.attempted) == (2, 1, 3)
        refreshed = await TaskRepository.get_by_id(db_session, task.id)
        assert refreshed is not None
        assert refreshed.quantity_completed == 2
        assert refreshed.quantity_failed == 1

    async def test_list_logs_ordered_by_account_number(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        task = await _reserve_task(db_session, test_user.id)
        for n in (3, 1, 2):
            await TaskRepository.create_log(
                db_session, task_id=task.id, account_number=n
            )

        logs = await TaskRepository.list_logs(db_session, task.id)

        assert [log.account_number for log in logs] == [1, 2, 3]

    async def test_update_log_rejects_unknown_fields(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        task = await _reserve_task(db_session, test_user.id)
        log = await TaskRepository.create_log(
            db_session, task_id=task.id, account_number=1
        )

        with pytest.raises(ValueError, match="Unknown fields: password"):
            await TaskRepository.update_log(db_session, log.id, password="x")


# =============================================================================
# finalize / recover_stalled
# =============================================================================


class TestFinalize:
    async def test_charges_attempted_and_refunds_the_rest(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        task = await _reserve_task(db_session, test_user.id, quantity=5)
        await TaskRepository.claim_next_pending(db_session)
        await _settle_log(db_session, task.id, 1, "success")
        await _settle_log(db_session, task.id, 2, "failed")

        settlement = await TaskRepository.finalize(
            db_session, task.id, to_status="failed", error_message="Aborted"
        )

        assert settlement is not None
        assert (settlement.credits_used, settlement.refunded) == (2, 3)
        task_after = await TaskRepository.get_by_id(db_session, task.id)
        assert task_after is not None
        assert task_after.status == "failed"
        assert task_after.credits_used == 2
        assert task_after.error_message == "Aborted"
        assert task_after.completed_at is not None
        balance = await CreditRepository.get_balance(db_session, test_user.id)
        assert balance == CreditBalance(total=10, used=2, available=8)

    async def test_only_processing_tasks_are_finalized(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        task = await _reserve_task(db_session, test_user.id)

        assert (
            await TaskRepository.finalize(db_session, task.id, to_status="completed")
            is None
        )

    async def test_finalize_twice_refunds_once(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        task = await _reserve_task(db_session, test_user.id, quantity=3)
        await TaskRepository.claim_next_pending(db_session)

        first = await TaskRepository.finalize(db_session, task.id, to_status="failed")
        second = await TaskRepository.finalize(db_session, task.id, to_status="failed")

        assert first is not None
        assert first.refunded == 3
        assert second is None
        balance = await CreditRepository.get_balance(db_session, test_user.id)
        assert balance == CreditBalance(total=10, used=0, available=10)


class TestRecoverStalled:
    async def test_fails_old_processing_tasks_and_refunds_unstarted_slots(
        self, db_session: AsyncSession
    ) -> None:
        user = await create_user(db_session, credits=10)
        task = await _reserve_task(db_session, user.id, quantity=4)
        await TaskRepository.transition(
            db_session,
            task.id,
            from_status="pending",
            to_status="processing",
            started_at=datetime.now(UTC) - timedelta(hours=3),
        )
        await _settle_log(db_session, task.id, 1, "success")
        # Slot 2 was mid-flight, slot 3 never started
        log2 = await TaskRepository.create_log(
            db_session, task_id=task.id, account_number=2
        )
        await TaskRepository.update_log(
            db_session, log2.id, status="processing", started_at=datetime.now(UTC)
        )
        await TaskRepository.create_log(db_session, task_id=task.id, account_number=3)

        settlements = await TaskRepository.recover_stalled(
            db_session, older_than=datetime.now(UTC) - timedelta(hours=2)
        )

        assert len(settlements) == 1
        assert settlements[0].credits_used == 2
        assert settlements[0].refunded == 2
        recovered = await TaskRepository.get_by_id(db_session, task.id)
        assert recovered is not None
        assert recovered.status == "failed"
        assert recovered.quantity_completed == 1
        assert recovered.quantity_failed == 2
        logs = await TaskRepository.list_logs(db_session, task.id)
        assert [log.status for log in logs] == ["success", "failed", "failed"]
        balance = await CreditRepository.get_balance(db_session, user.id)
        assert balance == CreditBalance(total=10, used=2, available=8)

    async def test_recent_processing_tasks_are_left_alone(
        self, db_session: AsyncSession, test_user: User
    ) -> None:
        await _reserve_task(db_session, test_user.id)
        await TaskRepository.claim_next_pending(db_session)

        settlements = await TaskRepository.recover_stalled(
            db_session, older_than=datetime.now(UTC) - timedelta(hours=2)
        )

        assert settlements == []
