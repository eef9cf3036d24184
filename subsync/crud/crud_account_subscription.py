"""CRUD operations for account subscriptions.

Every write here is a single ``UPDATE`` statement keyed by account id, so a write never
depends on a value read earlier in the same request.
"""

from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from subsync.core.datetime_utils import utc_now_naive
from subsync.models import AccountSubscription


class CRUDAccountSubscription:
    """CRUD operations for account subscriptions."""

    model = AccountSubscription

    async def get_by_account_id(
        self, db: AsyncSession, *, account_id: str
    ) -> Optional[AccountSubscription]:
        """Get the subscription record of an account.

        Args:
            db: Database session
            account_id: Account id

        Returns:
            AccountSubscription or None
        """
        result = await db.execute(
            select(AccountSubscription)
            .where(AccountSubscription.account_id == account_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_stripe_subscription_id(
        self, db: AsyncSession, *, stripe_subscription_id: str
    ) -> Optional[AccountSubscription]:
        """Get the subscription record by processor subscription id.

        Args:
            db: Database session
            stripe_subscription_id: Processor subscription id

        Returns:
            AccountSubscription or None
        """
        result = await db.execute(
            select(AccountSubscription)
            .where(AccountSubscription.stripe_subscription_id == stripe_subscription_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def update_by_account_id(
        self,
        db: AsyncSession,
        *,
        account_id: str,
        values: dict[str, Any],
        only_if: Optional[list[Any]] = None,
    ) -> int:
        """Overwrite the given columns for one account.

        Args:
            db: Database session
            account_id: Account id
            values: Column values or SQL expressions to assign
            only_if: Extra WHERE criteria; the row is left untouched when they do not hold

        Returns:
            Number of rows updated (0 or 1)
        """
        stmt = (
            update(AccountSubscription)
            .where(AccountSubscription.account_id == account_id)
            .values(**values, modified_at=utc_now_naive())
            .execution_options(synchronize_session=False)
        )
        if only_if:
            stmt = stmt.where(*only_if)

        result = await db.execute(stmt)
        return result.rowcount


account_subscription = CRUDAccountSubscription()
