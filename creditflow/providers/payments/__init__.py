"""PIX payment gateways."""

from creditflow.providers.payments.base import PaymentGateway, PixCharge
from creditflow.providers.payments.mock_adapter import MockPaymentGateway
from creditflow.providers.payments.signature import verify_webhook_signature

__all__ = [
    "PaymentGateway",
    "PixCharge",
    "MockPaymentGateway",
    "verify_webhook_signature",
]
