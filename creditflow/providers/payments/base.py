"""Abstract base class and types for payment gateways."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

# Gateway payment statuses the webhook ingestor acts on.
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_CANCELLED = "cancelled"


@dataclass(frozen=True)
class PixCharge:
    """A PIX charge issued by the gateway.

    Attributes:
        charge_id: Gateway payment id (stored as Transaction.external_id).
        qr_code: Base64 PNG of the QR code.
        copy_paste_code: PIX "copia e cola" payload.
        expires_at: When the charge stops accepting payment.
    """

    charge_id: str
    qr_code: str
    copy_paste_code: str
    expires_at: datetime


class PaymentGateway(ABC):
    """Abstract base class for PIX payment gateways."""

    @abstractmethod
    async def create_charge(
        self,
        *,
        amount_in_cents: int,
        payer_email: str,
        description: str,
        external_reference: str,
    ) -> PixCharge:
        """Issue a PIX charge.

        Args:
            amount_in_cents: Amount in BRL cents.
            payer_email: Email of the paying user.
            description: Text shown on the payer's statement.
            external_reference: Our reference, echoed back by the gateway.

        Returns:
            The issued charge.

        Raises:
            PaymentGatewayError: On any provider failure.
        """
        ...

    @abstractmethod
    async def get_status(self, charge_id: str) -> str:
        """Query the authoritative status of a charge.

        Args:
            charge_id: Gateway payment id.

        Returns:
            Provider status string (approved, pending, rejected, ...).

        Raises:
            PaymentGatewayError: On any provider failure.
        """
        ...
