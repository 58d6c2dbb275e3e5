"""Mercado Pago webhook ingestion.

Turns possibly duplicated, possibly out-of-order payment notifications into
at most one credit grant per Transaction. The notification payload is never
trusted for status: the gateway is always re-queried. The guarded
pending -> confirmed update is the idempotency key; the grant happens in
the same database transaction, so a redelivery either sees the confirmed
row or retries a fully rolled-back attempt.

Response codes:
    400  missing authenticity headers or payment id
    401  signature mismatch (or no secret configured)
    404  unknown payment id
    200  acknowledged (including no-ops and duplicates)
    500  unexpected error; Mercado Pago retries
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.providers.payments.base import (
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_REJECTED,
    PaymentGateway,
)
from creditflow.providers.payments.signature import verify_webhook_signature
from creditflow.repositories.credit_repository import CreditRepository
from creditflow.repositories.plan_repository import PlanRepository
from creditflow.repositories.transaction_repository import TransactionRepository

logger = structlog.get_logger()

# Provider statuses that end a pending transaction without payment.
_NEGATIVE_STATUS_MAP = {
    STATUS_REJECTED: "failed",
    STATUS_CANCELLED: "expired",
}


@dataclass(frozen=True)
class WebhookResult:
    """HTTP status code and JSON body for the webhook route."""

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


def _ok(message: str, **extra: Any) -> WebhookResult:
    return WebhookResult(200, {"data": {"message": message, **extra}})


def _error(status_code: int, code: str, message: str) -> WebhookResult:
    return WebhookResult(status_code, {"error": {"code": code, "message": message}})


def extract_payment_id(
    payload: dict[str, Any], query_data_id: str | None = None
) -> str | None:
    """Payment id from the body (data.id) or the ``data.id`` query param."""
    data = payload.get("data")
    if isinstance(data, dict) and data.get("id") not in (None, ""):
        return str(data["id"])
    if query_data_id:
        return query_data_id
    return None


class WebhookIngestor:
    """Handles one Mercado Pago notification per call.

    Args:
        db: Async database session. handle() commits or rolls back itself.
        gateway: Gateway used to re-query payment status.
        webhook_secret: Secret for HMAC signature verification.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        *,
        webhook_secret: str,
    ) -> None:
        self._db = db
        self._gateway = gateway
        self._secret = webhook_secret

    async def handle(
        self,
        payload: dict[str, Any],
        *,
        x_signature: str | None,
        x_request_id: str | None,
        query_data_id: str | None = None,
    ) -> WebhookResult:
        """Process one notification.

        Args:
            payload: Parsed JSON body.
            x_signature: x-signature header.
            x_request_id: x-request-id header.
            query_data_id: ``data.id`` query parameter, if present.

        Returns:
            WebhookResult for the route to render.
        """
        notification_type = payload.get("type") or payload.get("topic")
        log = logger.bind(
            notification_type=notification_type, action=payload.get("action")
        )

        if not x_signature or not x_request_id:
            log.warning("webhook_missing_signature_headers")
            return _error(400, "VALIDATION_ERROR", "Missing signature headers")

        payment_id = extract_payment_id(payload, query_data_id)
        if notification_type == "payment" and payment_id is None:
            log.warning("webhook_missing_payment_id")
            return _error(400, "VALIDATION_ERROR", "Missing payment id")

        if not verify_webhook_signature(
            x_signature=x_signature,
            x_request_id=x_request_id,
            data_id=payment_id or "",
            secret=self._secret,
        ):
            log.warning("webhook_invalid_signature", payment_id=payment_id)
            return _error(401, "UNAUTHORIZED", "Invalid webhook signature")

        if notification_type != "payment":
            log.info("webhook_ignored_type")
            return _ok(f"Notification type {notification_type} ignored")

        if payment_id is None:
            return _error(400, "VALIDATION_ERROR", "Missing payment id")
        try:
            return await self._handle_payment(payment_id)
        except Exception:
            await self._db.rollback()
            log.exception("webhook_processing_failed", payment_id=payment_id)
            return _error(500, "INTERNAL_ERROR", "Webhook processing failed")

    async def _handle_payment(self, payment_id: str) -> WebhookResult:
        log = logger.bind(payment_id=payment_id)

        txn = await TransactionRepository.get_by_external_id(self._db, payment_id)
        if txn is None:
            log.warning("webhook_transaction_not_found")
            return _error(
                404, "NOT_FOUND", f"Transaction for payment '{payment_id}' not found"
            )

        status = await self._gateway.get_status(payment_id)
        log = log.bind(transaction_id=str(txn.id), payment_status=status)

        if status != STATUS_APPROVED:
            new_status = _NEGATIVE_STATUS_MAP.get(status)
            if new_status is not None:
                moved = await TransactionRepository.transition(
                    self._db, txn.id, from_status="pending", to_status=new_status
                )
                await self._db.commit()
                if moved:
                    log.info("webhook_payment_closed", transaction_status=new_status)
            else:
                log.info("webhook_payment_not_approved")
            return _ok(f"Payment {status}, no credits granted", status=status)

        confirmed = await TransactionRepository.transition(
            self._db,
            txn.id,
            from_status="pending",
            to_status="confirmed",
            paid_at=datetime.now(UTC),
        )
        if not confirmed:
            log.info("webhook_payment_already_processed")
            return _ok("Payment already processed")

        plan = await PlanRepository.get_by_id(self._db, txn.plan_id)
        if plan is None:
            raise LookupError(f"Plan {txn.plan_id} not found")

        balance = await CreditRepository.grant(
            self._db, user_id=txn.user_id, amount=plan.credits
        )
        await self._db.commit()
        log.info(
            "webhook_payment_confirmed",
            user_id=str(txn.user_id),
            credits_added=plan.credits,
            available_credits=balance.available,
        )
        return _ok(
            "Payment processed successfully",
            credits_added=plan.credits,
        )
