"""Repository for the per-user credit ledger.

Every balance mutation is a single conditional UPDATE so concurrent
callers can never overdraw a ledger or break the
available == total - used invariant.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, cast

from sqlalchemy import case, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.models.credit import CreditLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreditBalance:
    """Snapshot of a user's ledger row."""

    total: int
    used: int
    available: int


_ZERO_BALANCE = CreditBalance(total=0, used=0, available=0)


def _require_positive(amount: int, operation: str) -> None:
    if amount <= 0:
        raise ValueError(f"{operation} amount must be positive")


class CreditRepository:
    """Stateless repository for CreditLedger operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_balance(db: AsyncSession, user_id: uuid.UUID) -> CreditBalance:
        """Read the user's current balance.

        Args:
            db: Async database session.
            user_id: User to query balance for.

        Returns:
            Current balance, all zeros if the user has no ledger row yet.
        """
        stmt = select(
            CreditLedger.total_credits,
            CreditLedger.used_credits,
            CreditLedger.available_credits,
        ).where(CreditLedger.user_id == user_id)
        row = (await db.execute(stmt)).one_or_none()
        if row is None:
            return _ZERO_BALANCE
        return CreditBalance(total=row[0], used=row[1], available=row[2])

    @staticmethod
    async def create_ledger(db: AsyncSession, user_id: uuid.UUID) -> CreditLedger:
        """Create a zero-balance ledger row for a new user.

        Raises:
            sqlalchemy.exc.IntegrityError: If the user already has a ledger.
        """
        ledger = CreditLedger(
            user_id=user_id,
            total_credits=0,
            used_credits=0,
            available_credits=0,
        )
        db.add(ledger)
        await db.flush()
        return ledger

    @staticmethod
    async def grant(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        amount: int,
    ) -> CreditBalance:
        """Add purchased credits to a user's ledger.

        Creates the ledger row when absent. Callers guarantee at-most-once
        semantics (the webhook ingestor guards on the Transaction status).

        Args:
            db: Async database session.
            user_id: User to credit.
            amount: Credits to add (positive).

        Returns:
            Balance after the grant.

        Raises:
            ValueError: If amount is not positive.
        """
        _require_positive(amount, "grant")
        if await CreditRepository._increment_total(db, user_id, amount):
            return await CreditRepository.get_balance(db, user_id)

        try:
            async with db.begin_nested():
                db.add(
                    CreditLedger(
                        user_id=user_id,
                        total_credits=amount,
                        used_credits=0,
                        available_credits=amount,
                    )
                )
                await db.flush()
        except IntegrityError:
            # Another session created the row between our UPDATE and INSERT.
            logger.debug("Ledger row appeared concurrently for user=%s", user_id)
            await CreditRepository._increment_total(db, user_id, amount)
        return await CreditRepository.get_balance(db, user_id)

    @staticmethod
    async def atomic_debit(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        amount: int,
    ) -> bool:
        """Atomically move credits from available to used.

        Uses WHERE available_credits >= amount to prevent overdraft.

        Args:
            db: Async database session.
            user_id: User to debit.
            amount: Credits to debit (positive).

        Returns:
            True if debit succeeded, False if insufficient credits (ledger
            untouched).

        Raises:
            ValueError: If amount is not positive.
        """
        _require_positive(amount, "atomic_debit")
        stmt = (
            update(CreditLedger)
            .where(
                CreditLedger.user_id == user_id,
                CreditLedger.available_credits >= amount,
            )
            .values(
                used_credits=CreditLedger.used_credits + amount,
                available_credits=CreditLedger.available_credits - amount,
            )
            .execution_options(synchronize_session=False)
        )
        result = cast(CursorResult[Any], await db.execute(stmt))
        rows_updated: int = result.rowcount
        return rows_updated > 0

    @staticmethod
    async def refund(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        amount: int,
    ) -> CreditBalance:
        """Return charged credits to available.

        The refunded amount is clamped at used_credits so the ledger can
        never go negative; a clamped refund is logged.

        Args:
            db: Async database session.
            user_id: User to refund.
            amount: Credits to return (positive).

        Returns:
            Balance after the refund.

        Raises:
            ValueError: If amount is not positive.
        """
        _require_positive(amount, "refund")
        before = await CreditRepository.get_balance(db, user_id)
        if before.used < amount:
            logger.warning(
                "Refund clamped for user=%s: requested=%d used=%d",
                user_id,
                amount,
                before.used,
            )
        refundable = case(
            (CreditLedger.used_credits < amount, CreditLedger.used_credits),
            else_=amount,
        )
        stmt = (
            update(CreditLedger)
            .where(CreditLedger.user_id == user_id)
            .values(
                used_credits=CreditLedger.used_credits - refundable,
                available_credits=CreditLedger.available_credits + refundable,
            )
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)
        return await CreditRepository.get_balance(db, user_id)

    @staticmethod
    async def _increment_total(
        db: AsyncSession, user_id: uuid.UUID, amount: int
    ) -> bool:
        stmt = (
            update(CreditLedger)
            .where(CreditLedger.user_id == user_id)
            .values(
                total_credits=CreditLedger.total_credits + amount,
                available_credits=CreditLedger.available_credits + amount,
            )
            .execution_options(synchronize_session=False)
        )
        result = cast(CursorResult[Any], await db.execute(stmt))
        return result.rowcount > 0
