"""Repository for CreditPlan reference data."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.models.credit import CreditPlan


class PlanRepository:
    """Stateless repository for CreditPlan lookups."""

    @staticmethod
    async def get_by_id(db: AsyncSession, plan_id: uuid.UUID) -> CreditPlan | None:
        return await db.get(CreditPlan, plan_id)

    @staticmethod
    async def get_active(db: AsyncSession, plan_id: uuid.UUID) -> CreditPlan | None:
        """Fetch a plan only if it can currently be purchased."""
        stmt = select(CreditPlan).where(
            CreditPlan.id == plan_id, CreditPlan.is_active.is_(True)
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def list_active(db: AsyncSession) -> list[CreditPlan]:
        """Active plans in display order."""
        stmt = (
            select(CreditPlan)
            .where(CreditPlan.is_active.is_(True))
            .order_by(CreditPlan.display_order, CreditPlan.price_in_cents)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_by_name(db: AsyncSession, name: str) -> CreditPlan | None:
        stmt = select(CreditPlan).where(CreditPlan.name == name)
        return (await db.execute(stmt)).scalar_one_or_none()
