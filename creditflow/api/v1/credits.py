"""Credits API router.

Balance and purchasable plans. Balance requires authentication; the plan
catalog is public.
"""

from datetime import UTC, datetime

from fastapi import APIRouter

from creditflow.api.deps import CurrentUserId, DbSession
from creditflow.core.responses import DataResponse
from creditflow.repositories.credit_repository import CreditRepository
from creditflow.repositories.plan_repository import PlanRepository
from creditflow.schemas.credit import BalanceResponse, CreditPlanResponse

router = APIRouter()


# =============================================================================
# GET /balance
# =============================================================================


@router.get("/balance")
async def get_balance(
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[BalanceResponse]:
    """Return the user's balance. A user with no ledger row reads as zeros."""
    balance = await CreditRepository.get_balance(db, user_id)
    return DataResponse(
        data=BalanceResponse(
            total_credits=balance.total,
            used_credits=balance.used,
            available_credits=balance.available,
            as_of=datetime.now(UTC),
        )
    )


# =============================================================================
# GET /plans
# =============================================================================


@router.get("/plans")
async def list_plans(db: DbSession) -> DataResponse[list[CreditPlanResponse]]:
    """Active plans in display order."""
    plans = await PlanRepository.list_active(db)
    return DataResponse(data=[CreditPlanResponse.model_validate(p) for p in plans])
