"""Repository for Task and TaskLog operations.

Every Task status change is a guarded UPDATE (WHERE status = expected) so
the worker, the cancel endpoint and stale recovery can race without
double-settling a task. Counters are always recomputed from TaskLog rows.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, cast

from sqlalchemy import func, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.models.task import Task, TaskLog
from creditflow.repositories.credit_repository import CreditRepository

logger = logging.getLogger(__name__)

# Candidates fetched per claim round. A lost race moves on to the next row.
_CLAIM_BATCH_SIZE = 5

# Fields that may be updated via TaskRepository.update_log().
_UPDATABLE_LOG_FIELDS: frozenset[str] = frozenset(
    {
        "email",
        "status",
        "attempts",
        "error_message",
        "project_id",
        "project_url",
        "started_at",
        "completed_at",
    }
)


@dataclass(frozen=True)
class LogCounts:
    """Per-task aggregate over TaskLog rows."""

    success: int
    failed: int
    attempted: int


@dataclass(frozen=True)
class Settlement:
    """Result of finalizing a task."""

    task_id: uuid.UUID
    status: str
    credits_used: int
    refunded: int


class TaskRepository:
    """Stateless repository for Task and TaskLog operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    # =========================================================================
    # Task CRUD
    # =========================================================================

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        invite_link: str,
        quantity: int,
    ) -> Task:
        """Insert a pending task holding a reservation of `quantity` credits.

        Args:
            db: Async database session.
            user_id: Task owner.
            invite_link: Invite URL for the batch.
            quantity: Number of account slots.

        Returns:
            Created Task with database-generated fields populated.
        """
        task = Task(
            user_id=user_id,
            invite_link=invite_link,
            quantity_requested=quantity,
            quantity_completed=0,
            quantity_failed=0,
            status="pending",
            credits_used=quantity,
        )
        db.add(task)
        await db.flush()
        await db.refresh(task)
        return task

    @staticmethod
    async def get_by_id(db: AsyncSession, task_id: uuid.UUID) -> Task | None:
        """Fetch a task by primary key, always reading current column values."""
        stmt = select(Task).where(Task.id == task_id).execution_options(
            populate_existing=True
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_for_user(
        db: AsyncSession, task_id: uuid.UUID, user_id: uuid.UUID
    ) -> Task | None:
        """Fetch a task only if it belongs to the user."""
        stmt = (
            select(Task)
            .where(Task.id == task_id, Task.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 20,
        status: str | None = None,
    ) -> tuple[list[Task], int]:
        """List a user's tasks, newest first.

        Args:
            db: Async database session.
            user_id: Owner to list tasks for.
            offset: Number of records to skip.
            limit: Maximum records to return.
            status: Optional status filter.

        Returns:
            Tuple of (tasks list, total count).
        """
        conditions = [Task.user_id == user_id]
        if status is not None:
            conditions.append(Task.status == status)

        count_stmt = select(func.count()).select_from(Task).where(*conditions)
        total = (await db.execute(count_stmt)).scalar_one()

        data_stmt = (
            select(Task)
            .where(*conditions)
            .order_by(Task.created_at.desc(), Task.id)
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(data_stmt)
        return list(result.scalars().all()), total

    # =========================================================================
    # State transitions
    # =========================================================================

    @staticmethod
    async def transition(
        db: AsyncSession,
        task_id: uuid.UUID,
        *,
        from_status: str,
        to_status: str,
        **values: Any,
    ) -> bool:
        """Guarded status change.

        Args:
            db: Async database session.
            task_id: Task to update.
            from_status: Status the task must currently have.
            to_status: New status.
            **values: Extra columns to set in the same statement.

        Returns:
            True if the task was in from_status and is now in to_status.
        """
        stmt = (
            update(Task)
            .where(Task.id == task_id, Task.status == from_status)
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        result = cast(CursorResult[Any], await db.execute(stmt))
        rows_updated: int = result.rowcount
        return rows_updated > 0

    @staticmethod
    async def claim_next_pending(db: AsyncSession) -> Task | None:
        """Atomically move the oldest pending task to processing.

        Candidates are read with FOR UPDATE SKIP LOCKED where the backend
        supports it; the guarded UPDATE is what makes the claim exclusive.

        Args:
            db: Async database session.

        Returns:
            The claimed Task, or None when no pending task is available.
        """
        stmt = (
            select(Task.id)
            .where(Task.status == "pending")
            .order_by(Task.created_at, Task.id)
            .limit(_CLAIM_BATCH_SIZE)
            .with_for_update(skip_locked=True)
        )
        candidates = list((await db.execute(stmt)).scalars().all())
        for task_id in candidates:
            claimed = await TaskRepository.transition(
                db,
                task_id,
                from_status="pending",
                to_status="processing",
                started_at=datetime.now(UTC),
            )
            if claimed:
                return await TaskRepository.get_by_id(db, task_id)
            logger.debug("Lost claim race for task=%s", task_id)
        return None

    # =========================================================================
    # TaskLog
    # =========================================================================

    @staticmethod
    async def create_log(
        db: AsyncSession,
        *,
        task_id: uuid.UUID,
        account_number: int,
        email: str | None = None,
    ) -> TaskLog:
        """Insert a pending log row for one account slot.

        Raises:
            sqlalchemy.exc.IntegrityError: If the slot already has a log.
        """
        log = TaskLog(
            task_id=task_id,
            account_number=account_number,
            email=email,
            status="pending",
            attempts=0,
        )
        db.add(log)
        await db.flush()
        await db.refresh(log)
        return log

    @staticmethod
    async def update_log(
        db: AsyncSession,
        log_id: uuid.UUID,
        **kwargs: Any,
    ) -> None:
        """Update TaskLog fields.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_LOG_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        stmt = (
            update(TaskLog)
            .where(TaskLog.id == log_id)
            .values(**kwargs)
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)

    @staticmethod
    async def list_logs(db: AsyncSession, task_id: uuid.UUID) -> list[TaskLog]:
        """All logs of a task ordered by account number."""
        stmt = (
            select(TaskLog)
            .where(TaskLog.task_id == task_id)
            .order_by(TaskLog.account_number)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_logs(db: AsyncSession, task_id: uuid.UUID) -> LogCounts:
        """Aggregate log outcomes for a task.

        A slot counts as attempted once provisioning started for it
        (started_at set), whatever its final status.
        """
        stmt = select(
            func.count().filter(TaskLog.status == "success"),
            func.count().filter(TaskLog.status == "failed"),
            func.count().filter(TaskLog.started_at.is_not(None)),
        ).where(TaskLog.task_id == task_id)
        success, failed, attempted = (await db.execute(stmt)).one()
        return LogCounts(success=success, failed=failed, attempted=attempted)

    @staticmethod
    async def refresh_counters(db: AsyncSession, task_id: uuid.UUID) -> LogCounts:
        """Recompute quantity_completed / quantity_failed from the logs."""
        counts = await TaskRepository.count_logs(db, task_id)
        stmt = (
            update(Task)
            .where(Task.id == task_id)
            .values(quantity_completed=counts.success, quantity_failed=counts.failed)
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)
        return counts

    # =========================================================================
    # Settlement
    # =========================================================================

    @staticmethod
    async def finalize(
        db: AsyncSession,
        task_id: uuid.UUID,
        *,
        to_status: str,
        error_message: str | None = None,
    ) -> Settlement | None:
        """Settle a processing task and refund its unattempted slots.

        Moves the task processing -> to_status, charges one credit per
        attempted slot and refunds the rest of the reservation, all in the
        caller's transaction.

        Args:
            db: Async database session.
            task_id: Task to settle.
            to_status: completed or failed.
            error_message: Reason stored on a failed task.

        Returns:
            Settlement, or None if the task was no longer processing.
        """
        task = await TaskRepository.get_by_id(db, task_id)
        if task is None or task.status != "processing":
            return None

        counts = await TaskRepository.count_logs(db, task_id)
        attempted = min(counts.attempted, task.quantity_requested)
        settled = await TaskRepository.transition(
            db,
            task_id,
            from_status="processing",
            to_status=to_status,
            quantity_completed=counts.success,
            quantity_failed=counts.failed,
            credits_used=attempted,
            error_message=error_message,
            completed_at=datetime.now(UTC),
        )
        if not settled:
            return None

        refund = task.quantity_requested - attempted
        if refund > 0:
            await CreditRepository.refund(db, user_id=task.user_id, amount=refund)
        return Settlement(
            task_id=task_id,
            status=to_status,
            credits_used=attempted,
            refunded=refund,
        )

    @staticmethod
    async def recover_stalled(
        db: AsyncSession,
        *,
        older_than: datetime,
        message: str = "Processing interrupted before completion",
    ) -> list[Settlement]:
        """Fail tasks stuck in processing since before `older_than`.

        Open logs of each stalled task are failed with `message`; slots
        that never started are refunded by finalize().

        Args:
            db: Async database session.
            older_than: Tasks with started_at before this are stalled.
            message: Error stored on the task and its open logs.

        Returns:
            One Settlement per recovered task.
        """
        stmt = select(Task.id).where(
            Task.status == "processing",
            Task.started_at < older_than,
        )
        stalled = list((await db.execute(stmt)).scalars().all())

        settlements: list[Settlement] = []
        for task_id in stalled:
            close_logs = (
                update(TaskLog)
                .where(
                    TaskLog.task_id == task_id,
                    TaskLog.status.in_(("pending", "processing")),
                )
                .values(
                    status="failed",
                    error_message=message,
                    completed_at=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            )
            await db.execute(close_logs)
            settlement = await TaskRepository.finalize(
                db, task_id, to_status="failed", error_message=message
            )
            if settlement is not None:
                logger.warning(
                    "Recovered stalled task=%s refunded=%d",
                    task_id,
                    settlement.refunded,
                )
                settlements.append(settlement)
        return settlements
