"""Repository for Transaction (PIX purchase) operations."""

import uuid
from typing import Any, cast

from sqlalchemy import func, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.models.transaction import Transaction


class TransactionRepository:
    """Stateless repository for Transaction table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        plan_id: uuid.UUID,
        amount_in_cents: int,
    ) -> Transaction:
        """Insert a pending transaction."""
        txn = Transaction(
            user_id=user_id,
            plan_id=plan_id,
            amount_in_cents=amount_in_cents,
            status="pending",
        )
        db.add(txn)
        await db.flush()
        await db.refresh(txn)
        return txn

    @staticmethod
    async def get_by_id(db: AsyncSession, txn_id: uuid.UUID) -> Transaction | None:
        stmt = (
            select(Transaction)
            .where(Transaction.id == txn_id)
            .execution_options(populate_existing=True)
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def get_for_user(
        db: AsyncSession, txn_id: uuid.UUID, user_id: uuid.UUID
    ) -> Transaction | None:
        stmt = (
            select(Transaction)
            .where(Transaction.id == txn_id, Transaction.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def get_by_external_id(
        db: AsyncSession, external_id: str
    ) -> Transaction | None:
        """Resolve a transaction from the gateway's payment id."""
        stmt = (
            select(Transaction)
            .where(Transaction.external_id == external_id)
            .execution_options(populate_existing=True)
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def list_by_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Transaction], int]:
        """List a user's transactions, newest first.

        Returns:
            Tuple of (transactions list, total count).
        """
        count_stmt = (
            select(func.count())
            .select_from(Transaction)
            .where(Transaction.user_id == user_id)
        )
        total = (await db.execute(count_stmt)).scalar_one()

        data_stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id)
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(data_stmt)
        return list(result.scalars().all()), total

    @staticmethod
    async def attach_charge(
        db: AsyncSession,
        txn_id: uuid.UUID,
        **values: Any,
    ) -> None:
        """Store the gateway charge (external_id, QR code, expiry)."""
        stmt = (
            update(Transaction)
            .where(Transaction.id == txn_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)

    @staticmethod
    async def transition(
        db: AsyncSession,
        txn_id: uuid.UUID,
        *,
        from_status: str,
        to_status: str,
        **values: Any,
    ) -> bool:
        """Guarded status change.

        Returns:
            True if the row was in from_status and is now in to_status.
        """
        stmt = (
            update(Transaction)
            .where(Transaction.id == txn_id, Transaction.status == from_status)
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        result = cast(CursorResult[Any], await db.execute(stmt))
        rows_updated: int = result.rowcount
        return rows_updated > 0
