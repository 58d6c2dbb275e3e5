"""Transactions API router.

POST creates a pending Transaction with its PIX charge; credits are only
granted later by the Mercado Pago webhook.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends

from creditflow.api.deps import CurrentUserId, DbSession, Gateway
from creditflow.core.pagination import PaginationParams, pagination_params
from creditflow.core.responses import DataResponse, ListResponse, PaginationMeta
from creditflow.schemas.transaction import CreatePurchaseRequest, TransactionResponse
from creditflow.services.payment_service import PaymentService

router = APIRouter()

Pagination = Annotated[PaginationParams, Depends(pagination_params)]


@router.post("", status_code=201)
async def create_purchase(
    body: CreatePurchaseRequest,
    user_id: CurrentUserId,
    db: DbSession,
    gateway: Gateway,
) -> DataResponse[TransactionResponse]:
    """Start a credit purchase and return the PIX charge."""
    txn = await PaymentService(db, gateway).create_purchase(user_id, body.plan_id)
    return DataResponse(data=TransactionResponse.model_validate(txn))


@router.get("")
async def list_transactions(
    user_id: CurrentUserId,
    db: DbSession,
    gateway: Gateway,
    pagination: Pagination,
) -> ListResponse[TransactionResponse]:
    """List the user's transactions, newest first."""
    txns, total = await PaymentService(db, gateway).list_transactions(
        user_id, offset=pagination.offset, limit=pagination.limit
    )
    return ListResponse(
        data=[TransactionResponse.model_validate(t) for t in txns],
        meta=PaginationMeta(
            total=total, page=pagination.page, per_page=pagination.per_page
        ),
    )


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: uuid.UUID,
    user_id: CurrentUserId,
    db: DbSession,
    gateway: Gateway,
) -> DataResponse[TransactionResponse]:
    """Fetch one of the user's transactions."""
    txn = await PaymentService(db, gateway).get_transaction(user_id, transaction_id)
    return DataResponse(data=TransactionResponse.model_validate(txn))
