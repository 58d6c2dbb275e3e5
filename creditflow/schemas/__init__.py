"""Pydantic request/response schemas for API endpoints."""

from creditflow.schemas.credit import BalanceResponse, CreditPlanResponse
from creditflow.schemas.task import (
    CreateTaskRequest,
    TaskCreatedResponse,
    TaskLogResponse,
    TaskProgressResponse,
    TaskResponse,
)
from creditflow.schemas.transaction import (
    CreatePurchaseRequest,
    TransactionResponse,
)

__all__ = [
    # Credits
    "BalanceResponse",
    "CreditPlanResponse",
    # Tasks
    "CreateTaskRequest",
    "TaskCreatedResponse",
    "TaskLogResponse",
    "TaskProgressResponse",
    "TaskResponse",
    # Transactions
    "CreatePurchaseRequest",
    "TransactionResponse",
]
