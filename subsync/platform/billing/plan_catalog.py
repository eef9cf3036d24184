"""Plan catalog resolution.

Maps processor price ids to internal plan ids. The catalog is read-only at runtime; it
is seeded from ``settings.PLAN_CATALOG`` on startup.
"""

from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from subsync import crud, schemas
from subsync.core.exceptions import ExternalServiceError, PlanNotFoundException
from subsync.core.logging import logger
from subsync.db.unit_of_work import UnitOfWork


class PlanCatalog:
    """Resolver from processor price ids to internal plans."""

    async def resolve_plan(self, db: AsyncSession, stripe_price_id: Optional[str]) -> str:
        """Resolve the plan a processor price belongs to.

        Args:
            db: Database session
            stripe_price_id: Processor price id

        Returns:
            The internal plan id

        Raises:
            PlanNotFoundException: If the price is empty or not registered
            ExternalServiceError: If the catalog cannot be read
        """
        if not stripe_price_id:
            raise PlanNotFoundException(str(stripe_price_id))

        try:
            plan_id = await crud.plan.get_plan_id_for_price(db, stripe_price_id=stripe_price_id)
        except SQLAlchemyError as e:
            await db.rollback()
            raise ExternalServiceError(
                service_name="Database", message=f"Failed to resolve plan: {str(e)}"
            ) from e
        if plan_id is None:
            raise PlanNotFoundException(stripe_price_id)
        return plan_id

    async def get_price_mapping(self, db: AsyncSession) -> dict[str, str]:
        """Get the full price id to plan id mapping."""
        return await crud.plan.get_price_mapping(db)

    async def register_plan(
        self,
        db: AsyncSession,
        plan_id: str,
        stripe_price_ids: Iterable[str],
        name: Optional[str] = None,
    ) -> None:
        """Create a plan if missing and register any prices not yet mapped.

        A price already mapped to another plan is left where it is and logged, since a
        price id belongs to at most one plan.
        """
        mapping = await crud.plan.get_price_mapping(db)

        async with UnitOfWork(db) as uow:
            if await crud.plan.get_by_plan_id(db, plan_id=plan_id) is None:
                await crud.plan.create(
                    db,
                    obj_in=schemas.PlanCreate(plan_id=plan_id, name=name or plan_id.title()),
                    uow=uow,
                )

            for price_id in stripe_price_ids:
                owner = mapping.get(price_id)
                if owner == plan_id:
                    continue
                if owner is not None:
                    logger.warning(
                        f"Price {price_id} already belongs to plan {owner}, "
                        f"not registering it for {plan_id}"
                    )
                    continue
                await crud.plan.add_price(
                    db,
                    obj_in=schemas.PlanPriceCreate(stripe_price_id=price_id, plan_id=plan_id),
                    uow=uow,
                )
                mapping[price_id] = plan_id


plan_catalog = PlanCatalog()
