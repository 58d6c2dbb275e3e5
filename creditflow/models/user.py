"""User model - authentication foundation.

Owns one CreditLedger row and any number of Tasks and Transactions.
Users are never hard-deleted.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creditflow.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from creditflow.models.credit import CreditLedger

USER_ROLES = ("user", "admin")


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """User account for authentication.

    Attributes:
        id: UUID primary key.
        email: Unique email address (stored lowercase).
        name: Optional display name.
        password_hash: bcrypt hash.
        role: user or admin.
        last_signed_in: Timestamp of the most recent successful login.
        token_invalidated_before: JWTs issued before this are rejected.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN ('user', 'admin')",
            name="ck_users_role_valid",
        ),
    )

    email: Mapped[str] = mapped_column(
        String(320),
        unique=True,
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    role: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="user",
        server_default=text("'user'"),
    )
    last_signed_in: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    token_invalidated_before: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    credit_ledger: Mapped["CreditLedger | None"] = relationship(
        "CreditLedger",
        back_populates="user",
        uselist=False,
    )
