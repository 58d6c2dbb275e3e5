"""Credit purchase flow: Transaction + PIX charge.

The pending Transaction is flushed before the gateway call so its id can
be sent as the external reference. A gateway failure marks the
Transaction failed instead of leaving a pending row with no charge.
"""

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.errors import NotFoundError, PaymentGatewayUnavailableError
from creditflow.models.credit import CreditPlan
from creditflow.models.transaction import Transaction
from creditflow.providers.errors import PaymentGatewayError
from creditflow.providers.payments.base import PaymentGateway
from creditflow.repositories.plan_repository import PlanRepository
from creditflow.repositories.transaction_repository import TransactionRepository
from creditflow.repositories.user_repository import UserRepository

logger = structlog.get_logger()


def external_reference_for(txn_id: uuid.UUID) -> str:
    """Reference sent to the gateway and used as its idempotency key."""
    return f"txn-{txn_id}"


def charge_description(plan: CreditPlan) -> str:
    return f"{plan.name} - {plan.credits} créditos"


class PaymentService:
    """Purchase and read operations for transactions.

    Args:
        db: Async database session. The caller commits.
        gateway: PIX payment gateway.
    """

    def __init__(self, db: AsyncSession, gateway: PaymentGateway) -> None:
        self._db = db
        self._gateway = gateway

    async def create_purchase(
        self, user_id: uuid.UUID, plan_id: uuid.UUID
    ) -> Transaction:
        """Create a pending transaction and its PIX charge.

        Args:
            user_id: Buyer.
            plan_id: Plan to purchase.

        Returns:
            The transaction with QR code, copy-paste code and expiry set.

        Raises:
            NotFoundError: Plan missing or inactive, or user missing.
            PaymentGatewayUnavailableError: The gateway failed; the
                transaction is recorded as failed.
        """
        plan = await PlanRepository.get_active(self._db, plan_id)
        if plan is None:
            raise NotFoundError("Plan", str(plan_id))
        user = await UserRepository.get_by_id(self._db, user_id)
        if user is None:
            raise NotFoundError("User")

        txn = await TransactionRepository.create(
            self._db,
            user_id=user_id,
            plan_id=plan.id,
            amount_in_cents=plan.price_in_cents,
        )
        try:
            charge = await self._gateway.create_charge(
                amount_in_cents=plan.price_in_cents,
                payer_email=user.email,
                description=charge_description(plan),
                external_reference=external_reference_for(txn.id),
            )
        except PaymentGatewayError as e:
            await TransactionRepository.transition(
                self._db, txn.id, from_status="pending", to_status="failed"
            )
            # Persist the failed row even though the request errors out.
            await self._db.commit()
            logger.error(
                "purchase_charge_failed",
                transaction_id=str(txn.id),
                user_id=str(user_id),
                error=str(e),
            )
            raise PaymentGatewayUnavailableError() from e

        await TransactionRepository.attach_charge(
            self._db,
            txn.id,
            external_id=charge.charge_id,
            qr_code=charge.qr_code,
            pix_copy_paste=charge.copy_paste_code,
            expires_at=charge.expires_at,
        )
        logger.info(
            "purchase_created",
            transaction_id=str(txn.id),
            user_id=str(user_id),
            plan=plan.name,
            amount_in_cents=plan.price_in_cents,
            charge_id=charge.charge_id,
        )
        refreshed = await TransactionRepository.get_by_id(self._db, txn.id)
        return refreshed if refreshed is not None else txn

    async def get_transaction(
        self, user_id: uuid.UUID, txn_id: uuid.UUID
    ) -> Transaction:
        """Fetch an owned transaction.

        Raises:
            NotFoundError: Transaction missing or owned by someone else.
        """
        txn = await TransactionRepository.get_for_user(self._db, txn_id, user_id)
        if txn is None:
            raise NotFoundError("Transaction", str(txn_id))
        return txn

    async def list_transactions(
        self, user_id: uuid.UUID, *, offset: int = 0, limit: int = 20
    ) -> tuple[list[Transaction], int]:
        return await TransactionRepository.list_by_user(
            self._db, user_id, offset=offset, limit=limit
        )
