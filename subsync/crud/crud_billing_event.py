"""CRUD operations for processed billing events."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from subsync import schemas
from subsync.crud._base import CRUDBase
from subsync.models import BillingEvent


class CRUDBillingEvent(CRUDBase[BillingEvent, schemas.BillingEventCreate, schemas.BillingEventCreate]):
    """CRUD operations for processed billing events."""

    async def get_by_stripe_event_id(
        self, db: AsyncSession, *, stripe_event_id: str
    ) -> Optional[BillingEvent]:
        """Get a processed event by processor event id.

        Args:
            db: Database session
            stripe_event_id: Processor event id

        Returns:
            BillingEvent or None
        """
        result = await db.execute(
            select(BillingEvent).where(BillingEvent.stripe_event_id == stripe_event_id)
        )
        return result.scalar_one_or_none()


billing_event = CRUDBillingEvent(BillingEvent)
