"""CRUD operations for the plan catalog."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from subsync import schemas
from subsync.crud._base import CRUDBase
from subsync.db.unit_of_work import UnitOfWork
from subsync.models import Plan, PlanPrice


class CRUDPlan(CRUDBase[Plan, schemas.PlanCreate, schemas.PlanCreate]):
    """CRUD operations for plans and their processor prices."""

    async def get_by_plan_id(self, db: AsyncSession, *, plan_id: str) -> Optional[Plan]:
        """Get a plan by its internal id."""
        result = await db.execute(select(Plan).where(Plan.plan_id == plan_id))
        return result.scalar_one_or_none()

    async def get_plan_id_for_price(
        self, db: AsyncSession, *, stripe_price_id: str
    ) -> Optional[str]:
        """Get the plan a processor price belongs to.

        Args:
            db: Database session
            stripe_price_id: Processor price id

        Returns:
            Plan id or None when the price is not registered
        """
        result = await db.execute(
            select(PlanPrice.plan_id).where(PlanPrice.stripe_price_id == stripe_price_id)
        )
        return result.scalar_one_or_none()

    async def get_price_mapping(self, db: AsyncSession) -> dict[str, str]:
        """Get the full price id to plan id mapping."""
        result = await db.execute(select(PlanPrice.stripe_price_id, PlanPrice.plan_id))
        return {price_id: plan_id for price_id, plan_id in result.all()}

    async def add_price(
        self,
        db: AsyncSession,
        *,
        obj_in: schemas.PlanPriceCreate,
        uow: Optional[UnitOfWork] = None,
    ) -> PlanPrice:
        """Register a processor price for a plan."""
        price = PlanPrice(**obj_in.model_dump())
        db.add(price)

        if uow is None:
            await db.commit()
        else:
            await db.flush()

        return price


plan = CRUDPlan(Plan)
