"""Task and TaskLog models - batch provisioning jobs.

A Task is one user-submitted batch (invite link + quantity). A TaskLog is
the record of one account slot inside that batch. Both are mutated only by
the task pipeline after creation, and a Task is immutable once it reaches
completed, failed or cancelled.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creditflow.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

TASK_STATUSES = ("pending", "processing", "completed", "failed", "cancelled")
TASK_TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled"})
TASK_LOG_STATUSES = ("pending", "processing", "success", "failed")
TASK_LOG_TERMINAL_STATUSES = frozenset({"success", "failed"})


class Task(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One batch provisioning job.

    Attributes:
        user_id: Owner.
        invite_link: Invite URL every account in the batch joins through.
        quantity_requested: Number of account slots.
        quantity_completed: Slots settled as success (recomputed from logs).
        quantity_failed: Slots settled as failed (recomputed from logs).
        status: pending, processing, completed, failed or cancelled.
        credits_used: Credits currently charged for this task. Equals the
            reservation while pending/processing and the attempted slot
            count once terminal.
        error_message: Reason for a failed task.
        started_at: When a worker claimed the task.
        completed_at: When the task reached a terminal state.
    """

    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="ck_tasks_status_valid",
        ),
        CheckConstraint(
            "quantity_requested > 0", name="ck_tasks_quantity_positive"
        ),
        CheckConstraint(
            "quantity_completed + quantity_failed <= quantity_requested",
            name="ck_tasks_settled_within_requested",
        ),
        CheckConstraint("credits_used >= 0", name="ck_tasks_credits_nonneg"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    invite_link: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    quantity_requested: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    quantity_completed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    quantity_failed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
        index=True,
    )
    credits_used: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    error_message: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    logs: Mapped[list["TaskLog"]] = relationship(
        "TaskLog",
        back_populates="task",
        order_by="TaskLog.account_number",
    )

    @property
    def is_terminal(self) -> bool:
        """Whether the task reached completed, failed or cancelled."""
        return self.status in TASK_TERMINAL_STATUSES


class TaskLog(Base, UUIDPrimaryKeyMixin):
    """One account slot within a Task.

    Passwords are never stored; only the generated email and the resulting
    project identifiers are kept.

    Attributes:
        task_id: Parent task.
        account_number: Slot number, 1..quantity_requested, unique per task.
        email: Generated email used for the account.
        status: pending, processing, success or failed.
        attempts: Provisioning attempts made for this slot.
        error_message: Final error for a failed slot.
        project_id: Project identifier returned on success.
        project_url: Published project URL returned on success.
        started_at: When provisioning started for the slot.
        completed_at: When the slot settled.
        created_at: Row creation time.
    """

    __tablename__ = "task_logs"
    __table_args__ = (
        UniqueConstraint(
            "task_id", "account_number", name="uq_task_logs_task_account"
        ),
        CheckConstraint(
            "status IN ('pending', 'processing', 'success', 'failed')",
            name="ck_task_logs_status_valid",
        ),
        CheckConstraint(
            "account_number > 0", name="ck_task_logs_account_number_positive"
        ),
    )

    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    email: Mapped[str | None] = mapped_column(
        String(320),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    error_message: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    project_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    project_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    task: Mapped["Task"] = relationship("Task", back_populates="logs")
