"""Payment provider webhooks.

Unauthenticated (no cookie): authenticity comes from the Mercado Pago
HMAC signature, verified inside WebhookIngestor.
"""

from typing import Annotated

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import JSONResponse

from creditflow.api.deps import DbSession, Gateway
from creditflow.core.config import settings
from creditflow.services.webhook_service import WebhookIngestor

router = APIRouter()


@router.post("/mercadopago")
async def mercadopago_webhook(
    request: Request,
    db: DbSession,
    gateway: Gateway,
    x_signature: Annotated[str | None, Header()] = None,
    x_request_id: Annotated[str | None, Header()] = None,
    data_id: Annotated[str | None, Query(alias="data.id", max_length=64)] = None,
) -> JSONResponse:
    """Receive a Mercado Pago payment notification.

    Status codes are chosen by WebhookIngestor; Mercado Pago retries
    anything that is not 2xx.
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request body must be a JSON object",
                }
            },
        )

    ingestor = WebhookIngestor(
        db,
        gateway,
        webhook_secret=settings.mercadopago_webhook_secret.get_secret_value(),
    )
    result = await ingestor.handle(
        payload,
        x_signature=x_signature,
        x_request_id=x_request_id,
        query_data_id=data_id,
    )
    return JSONResponse(status_code=result.status_code, content=result.body)
