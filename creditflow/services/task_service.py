"""Task admission, cancellation and progress queries.

Credit policy: a task reserves `quantity` credits when it is created, is
charged one credit per attempted slot when it settles, and gets the rest
back. Cancelling a pending task returns the whole reservation.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import urlparse

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.config import settings
from creditflow.core.errors import (
    InsufficientCreditsError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from creditflow.models.task import Task, TaskLog
from creditflow.repositories.credit_repository import CreditRepository
from creditflow.repositories.task_repository import TaskRepository

logger = structlog.get_logger()

MAX_INVITE_LINK_LENGTH = 500


@dataclass(frozen=True)
class TaskProgress:
    """Progress snapshot derived from a task's logs.

    Attributes:
        status: Task status.
        quantity_requested: Number of slots.
        completed_count: Slots settled as success.
        failed_count: Slots settled as failed.
        progress_percent: round((completed + failed) / requested * 100).
        logs: Per-slot logs ordered by account number.
    """

    status: str
    quantity_requested: int
    completed_count: int
    failed_count: int
    progress_percent: int
    logs: list[TaskLog]


def calculate_progress_percent(settled: int, requested: int) -> int:
    """Percentage of slots that reached success or failed."""
    if requested <= 0:
        return 0
    return round(settled / requested * 100)


def validate_invite_link(invite_link: str) -> str:
    """Return the stripped link or raise ValidationError.

    Raises:
        ValidationError: If the link is not an http(s) URL or is too long.
    """
    link = invite_link.strip()
    if len(link) > MAX_INVITE_LINK_LENGTH:
        raise ValidationError(
            f"Invite link must be at most {MAX_INVITE_LINK_LENGTH} characters"
        )
    parsed = urlparse(link)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Invite link must be a valid http(s) URL")
    return link


class TaskService:
    """Task lifecycle operations for API handlers.

    Args:
        db: Async database session. The caller commits.
        max_quantity: Upper bound on slots per task.
    """

    def __init__(self, db: AsyncSession, *, max_quantity: int | None = None) -> None:
        self._db = db
        self._max_quantity = (
            max_quantity if max_quantity is not None else settings.task_max_quantity
        )

    async def create_task(
        self,
        user_id: uuid.UUID,
        *,
        invite_link: str,
        quantity: int,
    ) -> Task:
        """Validate, reserve credits and insert a pending task.

        The reservation and the insert share the caller's transaction, so a
        failed insert never leaves credits debited.

        Args:
            user_id: Task owner.
            invite_link: Invite URL for the batch.
            quantity: Number of accounts to create.

        Returns:
            The created Task.

        Raises:
            ValidationError: Bad invite link or quantity out of range.
            InsufficientCreditsError: Not enough available credits.
        """
        link = validate_invite_link(invite_link)
        if not 1 <= quantity <= self._max_quantity:
            raise ValidationError(
                f"Quantity must be between 1 and {self._max_quantity}"
            )

        reserved = await CreditRepository.atomic_debit(
            self._db, user_id=user_id, amount=quantity
        )
        if not reserved:
            balance = await CreditRepository.get_balance(self._db, user_id)
            logger.info(
                "task_rejected_insufficient_credits",
                user_id=str(user_id),
                required=quantity,
                available=balance.available,
            )
            raise InsufficientCreditsError(
                available=balance.available, required=quantity
            )

        task = await TaskRepository.create(
            self._db, user_id=user_id, invite_link=link, quantity=quantity
        )
        logger.info(
            "task_created",
            task_id=str(task.id),
            user_id=str(user_id),
            quantity=quantity,
        )
        return task

    async def get_task(self, user_id: uuid.UUID, task_id: uuid.UUID) -> Task:
        """Fetch an owned task.

        Raises:
            NotFoundError: Task missing or owned by someone else.
        """
        task = await TaskRepository.get_for_user(self._db, task_id, user_id)
        if task is None:
            raise NotFoundError("Task", str(task_id))
        return task

    async def list_tasks(
        self,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 20,
        status: str | None = None,
    ) -> tuple[list[Task], int]:
        return await TaskRepository.list_by_user(
            self._db, user_id, offset=offset, limit=limit, status=status
        )

    async def list_logs(self, user_id: uuid.UUID, task_id: uuid.UUID) -> list[TaskLog]:
        await self.get_task(user_id, task_id)
        return await TaskRepository.list_logs(self._db, task_id)

    async def get_progress(
        self, user_id: uuid.UUID, task_id: uuid.UUID
    ) -> TaskProgress:
        """Progress of an owned task, counted from its logs.

        Raises:
            NotFoundError: Task missing or owned by someone else.
        """
        task = await self.get_task(user_id, task_id)
        logs = await TaskRepository.list_logs(self._db, task_id)
        completed = sum(1 for log in logs if log.status == "success")
        failed = sum(1 for log in logs if log.status == "failed")
        return TaskProgress(
            status=task.status,
            quantity_requested=task.quantity_requested,
            completed_count=completed,
            failed_count=failed,
            progress_percent=calculate_progress_percent(
                completed + failed, task.quantity_requested
            ),
            logs=logs,
        )

    async def cancel_task(self, user_id: uuid.UUID, task_id: uuid.UUID) -> Task:
        """Cancel a pending task and return its reservation.

        Raises:
            NotFoundError: Task missing or owned by someone else.
            InvalidStateError: Task is no longer pending.
        """
        task = await self.get_task(user_id, task_id)
        cancelled = await TaskRepository.transition(
            self._db,
            task_id,
            from_status="pending",
            to_status="cancelled",
            credits_used=0,
            completed_at=datetime.now(UTC),
        )
        if not cancelled:
            current = await TaskRepository.get_by_id(self._db, task_id)
            status = current.status if current is not None else task.status
            raise InvalidStateError(f"Cannot cancel a task in status '{status}'")

        await CreditRepository.refund(
            self._db, user_id=user_id, amount=task.quantity_requested
        )
        logger.info(
            "task_cancelled",
            task_id=str(task_id),
            user_id=str(user_id),
            refunded=task.quantity_requested,
        )
        refreshed = await TaskRepository.get_by_id(self._db, task_id)
        return refreshed if refreshed is not None else task
