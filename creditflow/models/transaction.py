"""Transaction model - one attempted credit purchase via a PIX charge.

Created pending when the user picks a plan. Settled exactly once by the
webhook ingestor (pending -> confirmed | failed | expired). Terminal
states are final.
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from creditflow.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

TRANSACTION_STATUSES = ("pending", "confirmed", "failed", "expired")
TRANSACTION_TERMINAL_STATUSES = frozenset({"confirmed", "failed", "expired"})


class Transaction(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Credit purchase record.

    Attributes:
        user_id: Buyer.
        plan_id: Purchased CreditPlan.
        amount_in_cents: Price snapshot at purchase time.
        status: pending, confirmed, failed or expired.
        external_id: Payment id assigned by the gateway (unique).
        qr_code: Base64 PNG of the PIX QR code.
        pix_copy_paste: PIX "copia e cola" payload.
        expires_at: When the PIX charge stops accepting payment.
        paid_at: When the payment was confirmed.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'failed', 'expired')",
            name="ck_transactions_status_valid",
        ),
        CheckConstraint(
            "amount_in_cents > 0", name="ck_transactions_amount_positive"
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("credit_plans.id"),
        nullable=False,
    )
    amount_in_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )
    external_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    qr_code: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    pix_copy_paste: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
