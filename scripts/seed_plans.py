"""Sync the purchasable credit plans with the canonical catalog.

Standalone script (not an Alembic migration). Migration 001 seeds the same
three plans on a fresh database; this script re-applies the catalog after
price or description changes and is safe to run repeatedly.

Usage:
    python -m scripts.seed_plans

Per catalog entry (matched by name):
    1. Missing plan: insert it
    2. Existing plan with different credits/price/description/order: update
    3. Inactive plan: reactivate
Plans not in the catalog are left untouched (existing transactions point
at them).
"""

import logging
from dataclasses import dataclass
from typing import TypedDict

from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.models.credit import CreditPlan
from creditflow.repositories.plan_repository import PlanRepository

logger = logging.getLogger(__name__)


class PlanSpec(TypedDict):
    """One catalog entry."""

    name: str
    description: str
    credits: int
    price_in_cents: int
    display_order: int


PLAN_CATALOG: tuple[PlanSpec, ...] = (
    {
        "name": "Iniciante",
        "description": "10 contas",
        "credits": 10,
        "price_in_cents": 2990,
        "display_order": 1,
    },
    {
        "name": "Profissional",
        "description": "50 contas",
        "credits": 50,
        "price_in_cents": 12990,
        "display_order": 2,
    },
    {
        "name": "Empresarial",
        "description": "500 contas",
        "credits": 500,
        "price_in_cents": 99990,
        "display_order": 3,
    },
)

_SYNCED_FIELDS = ("description", "credits", "price_in_cents", "display_order")


@dataclass
class SeedStats:
    """Statistics from a seed run."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0


async def run_seed(
    session: AsyncSession, catalog: tuple[PlanSpec, ...] = PLAN_CATALOG
) -> SeedStats:
    """Upsert every catalog plan by name.

    Args:
        session: Active async database session. Caller is responsible
                 for committing or rolling back.
        catalog: Plans to apply. Defaults to PLAN_CATALOG.

    Returns:
        SeedStats with inserted/updated/unchanged counts.
    """
    stats = SeedStats()

    for entry in catalog:
        plan = await PlanRepository.get_by_name(session, entry["name"])
        if plan is None:
            session.add(CreditPlan(is_active=True, **entry))
            stats.inserted += 1
            continue

        changed = False
        for field_name in _SYNCED_FIELDS:
            value = entry[field_name]  # type: ignore[literal-required]
            if getattr(plan, field_name) != value:
                setattr(plan, field_name, value)
                changed = True
        if not plan.is_active:
            plan.is_active = True
            changed = True

        if changed:
            stats.updated += 1
        else:
            stats.unchanged += 1

    await session.flush()
    logger.info(
        "Seed complete: %d inserted, %d updated, %d unchanged",
        stats.inserted,
        stats.updated,
        stats.unchanged,
    )
    return stats


async def main() -> None:
    """CLI entry point: sync plans into the configured database."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from creditflow.core.config import settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        result = await run_seed(session)
        await session.commit()

    await engine.dispose()

    logger.info("Final stats: %s", result)


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
