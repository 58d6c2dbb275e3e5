"""Credit ORM models: per-user ledger and purchasable plans.

CreditLedger holds one running balance row per user. The balance
invariant (available == total - used, both non-negative) is enforced by
CHECK constraints in addition to the conditional updates in
CreditRepository, so a buggy caller cannot persist a broken balance.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creditflow.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from creditflow.models.user import User


class CreditLedger(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Per-user credit balance.

    Mutated only through CreditRepository.grant / atomic_debit / refund.

    Attributes:
        user_id: Owner (unique, one row per user).
        total_credits: Credits ever granted.
        used_credits: Credits currently charged.
        available_credits: Credits that can still be reserved.
    """

    __tablename__ = "user_credits"
    __table_args__ = (
        CheckConstraint("total_credits >= 0", name="ck_user_credits_total_nonneg"),
        CheckConstraint("used_credits >= 0", name="ck_user_credits_used_nonneg"),
        CheckConstraint(
            "available_credits >= 0", name="ck_user_credits_available_nonneg"
        ),
        CheckConstraint(
            "available_credits = total_credits - used_credits",
            name="ck_user_credits_balance_consistent",
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    total_credits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    used_credits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    available_credits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    user: Mapped["User"] = relationship("User", back_populates="credit_ledger")


class CreditPlan(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Purchasable credit bundle. Read-only reference data.

    Attributes:
        name: Plan display name (e.g. Iniciante, Profissional).
        description: Short description for the purchase UI.
        credits: Credits granted when a purchase is confirmed.
        price_in_cents: BRL price in cents (2990 = R$29,90).
        is_active: Soft-disable without deleting.
        display_order: Sort order in the purchase UI.
    """

    __tablename__ = "credit_plans"
    __table_args__ = (
        CheckConstraint("credits > 0", name="ck_credit_plans_credits_positive"),
        CheckConstraint("price_in_cents > 0", name="ck_credit_plans_price_positive"),
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    credits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    price_in_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    display_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
