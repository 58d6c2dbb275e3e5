"""Tests for provider factory selection and Playwright error classification."""

from collections.abc import Iterator

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from creditflow.core.config import Settings
from creditflow.providers import factory
from creditflow.providers.errors import ErrorKind, PermanentProvisioningError
from creditflow.providers.payments.mercadopago_adapter import MercadoPagoGateway
from creditflow.providers.payments.mock_adapter import MockPaymentGateway
from creditflow.providers.provisioning.mock_adapter import MockProvisioningClient
from creditflow.providers.provisioning.playwright_adapter import (
    PlaywrightProvisioningClient,
    classify_error,
)


@pytest.fixture(autouse=True)
def reset_singletons() -> Iterator[None]:
    factory.reset_gateways()
    yield
    factory.reset_gateways()


class TestPaymentGatewayFactory:
    def test_mock_gateway(self) -> None:
        gateway = factory.get_payment_gateway(Settings(payment_gateway="mock"))
        assert isinstance(gateway, MockPaymentGateway)

    def test_mercadopago_gateway(self) -> None:
        config = Settings(
            payment_gateway="mercadopago",
            mercadopago_access_token="APP_USR-token",
            pix_expiration_minutes=30,
        )

        gateway = factory.get_payment_gateway(config)

        assert isinstance(gateway, MercadoPagoGateway)
        assert gateway.expiration_minutes == 30

    def test_singleton_reused(self) -> None:
        first = factory.get_payment_gateway(Settings(payment_gateway="mock"))
        assert factory.get_payment_gateway() is first


class TestProvisioningClientFactory:
    def test_mock_client(self) -> None:
        client = factory.get_provisioning_client(
            Settings(provisioning_provider="mock")
        )
        assert isinstance(client, MockProvisioningClient)

    def test_playwright_client(self) -> None:
        client = factory.get_provisioning_client(
            Settings(provisioning_provider="playwright")
        )
        assert isinstance(client, PlaywrightProvisioningClient)


class TestClassifyError:
    def test_tagged_error_passes_through(self) -> None:
        error = PermanentProvisioningError("Email already registered")
        assert classify_error(error) is error

    def test_playwright_timeout_is_retryable(self) -> None:
        result = classify_error(PlaywrightTimeoutError("Timeout 30000ms exceeded"))
        assert result.kind == ErrorKind.RETRYABLE

    def test_missing_browser_is_fatal(self) -> None:
        result = classify_error(
            RuntimeError("Executable doesn't exist at /ms-playwright/chromium")
        )
        assert result.kind == ErrorKind.FATAL

    def test_network_error_is_retryable(self) -> None:
        result = classify_error(RuntimeError("connect ECONNREFUSED 127.0.0.1:443"))
        assert result.kind == ErrorKind.RETRYABLE

    def test_other_error_is_permanent(self) -> None:
        result = classify_error(ValueError("Element is not visible"))
        assert result.kind == ErrorKind.PERMANENT
        assert str(result) == "Element is not visible"
