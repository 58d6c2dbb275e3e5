"""Mercado Pago PIX gateway over the REST API.

Creates payments with ``POST /v1/payments`` and reads them back with
``GET /v1/payments/{id}``. Any HTTP or transport failure is raised as a
PaymentGatewayError so callers never see httpx types.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from creditflow.providers.errors import PaymentGatewayError
from creditflow.providers.payments.base import PaymentGateway, PixCharge

logger = logging.getLogger(__name__)


class MercadoPagoGateway(PaymentGateway):
    """PIX charges through Mercado Pago.

    Attributes:
        base_url: API root (https://api.mercadopago.com).
        notification_url: Webhook URL sent with every charge.
        expiration_minutes: Lifetime of each PIX charge.
    """

    def __init__(
        self,
        *,
        access_token: str,
        base_url: str = "https://api.mercadopago.com",
        notification_url: str | None = None,
        expiration_minutes: int = 15,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            access_token: Mercado Pago access token.
            base_url: API root.
            notification_url: Webhook URL for payment notifications.
            expiration_minutes: PIX charge lifetime.
            timeout_seconds: Per-request timeout.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.notification_url = notification_url
        self.expiration_minutes = expiration_minutes
        self._access_token = access_token
        self._timeout = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self._access_token}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def create_charge(
        self,
        *,
        amount_in_cents: int,
        payer_email: str,
        description: str,
        external_reference: str,
    ) -> PixCharge:
        expires_at = datetime.now(UTC) + timedelta(minutes=self.expiration_minutes)
        body: dict[str, Any] = {
            "transaction_amount": amount_in_cents / 100,
            "payment_method_id": "pix",
            "payer": {"email": payer_email},
            "description": description,
            "external_reference": external_reference,
            "date_of_expiration": expires_at.isoformat(timespec="milliseconds"),
        }
        if self.notification_url:
            body["notification_url"] = self.notification_url

        data = await self._request(
            "POST",
            "/v1/payments",
            json=body,
            headers={"X-Idempotency-Key": external_reference},
        )

        transaction_data = (data.get("point_of_interaction") or {}).get(
            "transaction_data"
        ) or {}
        copy_paste = transaction_data.get("qr_code")
        charge_id = data.get("id")
        if not copy_paste or charge_id is None:
            raise PaymentGatewayError("Mercado Pago response has no PIX QR code")

        return PixCharge(
            charge_id=str(charge_id),
            qr_code=transaction_data.get("qr_code_base64") or "",
            copy_paste_code=copy_paste,
            expires_at=expires_at,
        )

    async def get_status(self, charge_id: str) -> str:
        data = await self._request("GET", f"/v1/payments/{charge_id}")
        status = data.get("status")
        return str(status) if status else "unknown"

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
                resp.raise_for_status()
                result: dict[str, Any] = resp.json()
                return result
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Mercado Pago %s %s failed with status %d",
                method,
                path,
                e.response.status_code,
            )
            raise PaymentGatewayError(
                f"Mercado Pago returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Mercado Pago %s %s transport error: %s", method, path, e)
            raise PaymentGatewayError(f"Mercado Pago unreachable: {e}") from e
        except ValueError as e:
            raise PaymentGatewayError("Mercado Pago returned invalid JSON") from e
