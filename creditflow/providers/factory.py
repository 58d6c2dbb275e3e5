"""Provider factory functions.

Singleton payment gateway (shared HTTP configuration) and a fresh
provisioning client per worker.
"""

from creditflow.core.config import Settings, settings
from creditflow.providers.payments.base import PaymentGateway
from creditflow.providers.payments.mercadopago_adapter import MercadoPagoGateway
from creditflow.providers.payments.mock_adapter import MockPaymentGateway
from creditflow.providers.provisioning.base import ProvisioningClient
from creditflow.providers.provisioning.mock_adapter import MockProvisioningClient

_payment_gateway: PaymentGateway | None = None


def get_payment_gateway(config: Settings | None = None) -> PaymentGateway:
    """Get or create the payment gateway singleton.

    The first call builds the gateway from config; later calls reuse it.

    Args:
        config: Optional settings. Defaults to the process settings.

    Returns:
        PaymentGateway instance.

    Raises:
        ValueError: If the configured gateway is unknown.
    """
    global _payment_gateway

    if _payment_gateway is None:
        config = config or settings
        if config.payment_gateway == "mercadopago":
            _payment_gateway = MercadoPagoGateway(
                access_token=config.mercadopago_access_token.get_secret_value(),
                base_url=config.mercadopago_api_base_url,
                notification_url=config.mercadopago_notification_url or None,
                expiration_minutes=config.pix_expiration_minutes,
                timeout_seconds=config.mercadopago_timeout_seconds,
            )
        elif config.payment_gateway == "mock":
            _payment_gateway = MockPaymentGateway(
                expiration_minutes=config.pix_expiration_minutes
            )
        else:
            raise ValueError(f"Unknown payment gateway: {config.payment_gateway}")

    return _payment_gateway


def get_provisioning_client(config: Settings | None = None) -> ProvisioningClient:
    """Build the provisioning client selected by settings.

    The Playwright adapter is imported lazily so deployments using the
    mock client do not need browser binaries.

    Raises:
        ValueError: If the configured provider is unknown.
    """
    config = config or settings
    if config.provisioning_provider == "playwright":
        from creditflow.providers.provisioning.playwright_adapter import (
            PlaywrightProvisioningClient,
        )

        return PlaywrightProvisioningClient(
            headless=config.provisioning_headless,
            timeout_ms=config.provisioning_timeout_ms,
        )
    if config.provisioning_provider == "mock":
        return MockProvisioningClient()
    raise ValueError(f"Unknown provisioning provider: {config.provisioning_provider}")


def reset_gateways() -> None:
    """Reset provider singletons.

    Used in tests to ensure isolation between test cases.
    """
    global _payment_gateway
    _payment_gateway = None
