"""Create users, credit ledger, plans, transactions, tasks and task logs.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

Seeds the three launch credit plans.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        sa.UUID(),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        _id_column(),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("role", sa.String(10), nullable=False, server_default="user"),
        sa.Column("last_signed_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "token_invalidated_before", sa.DateTime(timezone=True), nullable=True
        ),
        *_timestamps(),
        sa.CheckConstraint("role IN ('user', 'admin')", name="ck_users_role_valid"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    # Credit plans (reference data)
    op.create_table(
        "credit_plans",
        _id_column(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("price_in_cents", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("credits > 0", name="ck_credit_plans_credits_positive"),
        sa.CheckConstraint(
            "price_in_cents > 0", name="ck_credit_plans_price_positive"
        ),
    )

    # Per-user balance. available = total - used is enforced here as well
    # as by the conditional updates in CreditRepository.
    op.create_table(
        "user_credits",
        _id_column(),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("total_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("used_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "available_credits", sa.Integer(), nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="uq_user_credits_user_id"),
        sa.CheckConstraint("total_credits >= 0", name="ck_user_credits_total_nonneg"),
        sa.CheckConstraint("used_credits >= 0", name="ck_user_credits_used_nonneg"),
        sa.CheckConstraint(
            "available_credits >= 0", name="ck_user_credits_available_nonneg"
        ),
        sa.CheckConstraint(
            "available_credits = total_credits - used_credits",
            name="ck_user_credits_balance_consistent",
        ),
    )

    # PIX purchases
    op.create_table(
        "transactions",
        _id_column(),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "plan_id",
            sa.UUID(),
            sa.ForeignKey("credit_plans.id"),
            nullable=False,
        ),
        sa.Column("amount_in_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("qr_code", sa.Text(), nullable=True),
        sa.Column("pix_copy_paste", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("external_id", name="uq_transactions_external_id"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'failed', 'expired')",
            name="ck_transactions_status_valid",
        ),
        sa.CheckConstraint(
            "amount_in_cents > 0", name="ck_transactions_amount_positive"
        ),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])

    # Tasks
    op.create_table(
        "tasks",
        _id_column(),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("invite_link", sa.String(500), nullable=False),
        sa.Column("quantity_requested", sa.Integer(), nullable=False),
        sa.Column(
            "quantity_completed", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("quantity_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("credits_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="ck_tasks_status_valid",
        ),
        sa.CheckConstraint(
            "quantity_requested > 0", name="ck_tasks_quantity_positive"
        ),
        sa.CheckConstraint(
            "quantity_completed + quantity_failed <= quantity_requested",
            name="ck_tasks_settled_within_requested",
        ),
        sa.CheckConstraint("credits_used >= 0", name="ck_tasks_credits_nonneg"),
    )
    op.create_index("ix_tasks_user_id", "tasks", ["user_id"])
    op.create_index("ix_tasks_status", "tasks", ["status"])
    # Claim query: oldest pending first
    op.create_index(
        "idx_tasks_pending_created",
        "tasks",
        ["created_at"],
        postgresql_where=sa.text("status = 'pending'"),
    )

    # Task logs (one per account slot)
    op.create_table(
        "task_logs",
        _id_column(),
        sa.Column(
            "task_id",
            sa.UUID(),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("account_number", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("project_id", sa.String(255), nullable=True),
        sa.Column("project_url", sa.String(500), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "task_id", "account_number", name="uq_task_logs_task_account"
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'success', 'failed')",
            name="ck_task_logs_status_valid",
        ),
        sa.CheckConstraint(
            "account_number > 0", name="ck_task_logs_account_number_positive"
        ),
    )
    op.create_index("ix_task_logs_task_id", "task_logs", ["task_id"])

    # Launch plans. Prices in BRL cents.
    op.execute(
        """
        INSERT INTO credit_plans
            (name, description, credits, price_in_cents, display_order)
        VALUES
            ('Iniciante', '10 contas', 10, 2990, 1),
            ('Profissional', '50 contas', 50, 12990, 2),
            ('Empresarial', '500 contas', 500, 99990, 3)
    """
    )


def downgrade() -> None:
    op.drop_index("ix_task_logs_task_id", table_name="task_logs")
    op.drop_table("task_logs")
    op.drop_index("idx_tasks_pending_created", table_name="tasks")
    op.drop_index("ix_tasks_status", table_name="tasks")
    op.drop_index("ix_tasks_user_id", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("user_credits")
    op.drop_table("credit_plans")
    op.drop_table("users")
