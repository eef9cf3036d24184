"""Initialize the database schema and the plan catalog."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from subsync.core.config import settings
from subsync.core.logging import logger
from subsync.models._base import Base
from subsync.platform.billing.plan_catalog import plan_catalog


async def create_tables(engine: AsyncEngine) -> None:
    """Create any missing tables.

    Args:
    ----
        engine (AsyncEngine): The engine bound to the target database.

    """
    # Register every model on the metadata
    import subsync.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(db: AsyncSession) -> None:
    """Seed the plan catalog from ``settings.PLAN_CATALOG``.

    Seeding is additive: plans and prices already present are left as they are.

    Args:
    ----
        db (AsyncSession): The database session.

    """
    if not settings.PLAN_CATALOG:
        logger.info("PLAN_CATALOG is empty, no plans seeded")
        return

    for plan_id, price_ids in settings.PLAN_CATALOG.items():
        await plan_catalog.register_plan(db, plan_id, price_ids)
        logger.info(f"Plan {plan_id} registered with {len(price_ids)} price(s)")
