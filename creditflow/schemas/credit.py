"""Credit balance and plan response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class BalanceResponse(BaseModel):
    """Response for GET /api/v1/credits/balance.

    Attributes:
        total_credits: Credits ever granted.
        used_credits: Credits currently charged or reserved.
        available_credits: total_credits - used_credits.
        as_of: Server time of the read.
    """

    model_config = ConfigDict(extra="forbid")

    total_credits: int
    used_credits: int
    available_credits: int
    as_of: datetime


class CreditPlanResponse(BaseModel):
    """Purchasable plan. price_in_cents is BRL cents."""

    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None = None
    credits: int
    price_in_cents: int
