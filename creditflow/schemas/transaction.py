"""Credit purchase request/response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CreatePurchaseRequest(BaseModel):
    """Request body for POST /api/v1/transactions."""

    model_config = ConfigDict(extra="forbid")

    plan_id: uuid.UUID


class TransactionResponse(BaseModel):
    """Transaction with its PIX charge data.

    Attributes:
        qr_code: Base64 QR image, present once the charge exists.
        pix_copy_paste: PIX copy-and-paste code.
        expires_at: When the PIX charge stops accepting payment.
        paid_at: Set when the webhook confirms the payment.
    """

    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: uuid.UUID
    plan_id: uuid.UUID
    amount_in_cents: int
    status: str
    qr_code: str | None = None
    pix_copy_paste: str | None = None
    expires_at: datetime | None = None
    paid_at: datetime | None = None
    created_at: datetime
