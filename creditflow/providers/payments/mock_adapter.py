"""Mock payment gateway for tests and local development."""

import base64
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from creditflow.providers.errors import PaymentGatewayError
from creditflow.providers.payments.base import PaymentGateway, PixCharge


class MockPaymentGateway(PaymentGateway):
    """Deterministic in-memory gateway.

    Charges get ids ``mock-<n>`` and start pending. Tests move them with
    set_status().

    Attributes:
        calls: Record of all method invocations for test assertions.
        statuses: Current status per charge id.
        fail_create: When set, create_charge raises this error.
    """

    def __init__(self, *, expiration_minutes: int = 15) -> None:
        self.expiration_minutes = expiration_minutes
        self.calls: list[dict[str, Any]] = []
        self.statuses: dict[str, str] = {}
        self.fail_create: PaymentGatewayError | None = None
        self._counter = 0

    async def create_charge(
        self,
        *,
        amount_in_cents: int,
        payer_email: str,
        description: str,
        external_reference: str,
    ) -> PixCharge:
        self.calls.append(
            {
                "method": "create_charge",
                "amount_in_cents": amount_in_cents,
                "payer_email": payer_email,
                "description": description,
                "external_reference": external_reference,
            }
        )
        if self.fail_create is not None:
            raise self.fail_create

        self._counter += 1
        charge_id = f"mock-{self._counter}"
        self.statuses[charge_id] = "pending"
        copy_paste = (
            f"00020126580014br.gov.bcb.pix0136{uuid.uuid4()}"
            f"5204000053039865802BR5913CREDITFLOW6009SAO PAULO"
        )
        return PixCharge(
            charge_id=charge_id,
            qr_code=base64.b64encode(copy_paste.encode()).decode(),
            copy_paste_code=copy_paste,
            expires_at=datetime.now(UTC) + timedelta(minutes=self.expiration_minutes),
        )

    async def get_status(self, charge_id: str) -> str:
        self.calls.append({"method": "get_status", "charge_id": charge_id})
        if charge_id not in self.statuses:
            raise PaymentGatewayError(f"Unknown charge {charge_id}", status_code=404)
        return self.statuses[charge_id]

    def set_status(self, charge_id: str, status: str) -> None:
        """Test helper to move a charge to a new provider status."""
        self.statuses[charge_id] = status
