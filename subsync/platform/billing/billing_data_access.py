"""Repository pattern for subscription database operations.

This module handles all database interactions for the subscription mirror, providing a
clean interface between the service layer and CRUD operations. It is one of the two
writers of subscription state (the other being webhook processing through this same
repository), and every multi-field write is a single statement per account.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from subsync import crud, schemas
from subsync.core.exceptions import AccountNotFoundException, ExternalServiceError
from subsync.db.unit_of_work import UnitOfWork
from subsync.models import AccountSubscription
from subsync.platform.billing.subscription_logic import CANCELLABLE_STATUSES, normalize_update
from subsync.schemas.subscription import SubscriptionStatus, SubscriptionUpdate

DATABASE_SERVICE = "Database"


class SubscriptionRepository:
    """Repository for all subscription-related database operations."""

    async def _fail(self, db: AsyncSession, e: SQLAlchemyError, action: str, uow) -> None:
        if uow is None:
            await db.rollback()
        raise ExternalServiceError(
            service_name=DATABASE_SERVICE, message=f"Failed to {action}: {str(e)}"
        ) from e

    # Accounts

    async def get_account(self, db: AsyncSession, account_id: str) -> schemas.Account:
        """Get an account.

        Raises:
            AccountNotFoundException: If no such account exists
            ExternalServiceError: If the store cannot be read
        """
        try:
            account = await crud.account.get_by_account_id(db, account_id=account_id)
        except SQLAlchemyError as e:
            await self._fail(db, e, "load account", None)
        if not account:
            raise AccountNotFoundException(f"Account {account_id} not found")
        return schemas.Account.model_validate(account, from_attributes=True)

    async def set_customer_id(
        self, db: AsyncSession, account_id: str, stripe_customer_id: str
    ) -> None:
        """Persist the processor customer id of an account."""
        try:
            account = await crud.account.get_by_account_id(db, account_id=account_id)
            if account:
                await crud.account.update(
                    db, db_obj=account, obj_in={"stripe_customer_id": stripe_customer_id}
                )
        except SQLAlchemyError as e:
            await self._fail(db, e, "store customer id", None)
        if not account:
            raise AccountNotFoundException(f"Account {account_id} not found")

    # Subscriptions

    async def get_subscription(self, db: AsyncSession, account_id: str) -> schemas.Subscription:
        """Get the subscription record of an account.

        Raises:
            AccountNotFoundException: If the account has no subscription record
            ExternalServiceError: If the store cannot be read
        """
        try:
            subscription = await crud.account_subscription.get_by_account_id(
                db, account_id=account_id
            )
        except SQLAlchemyError as e:
            await self._fail(db, e, "load subscription", None)
        if not subscription:
            raise AccountNotFoundException(f"Account {account_id} not found")
        return schemas.Subscription.model_validate(subscription, from_attributes=True)

    async def find_by_stripe_subscription(
        self, db: AsyncSession, stripe_subscription_id: Optional[str]
    ) -> Optional[schemas.Subscription]:
        """Get the record mirroring a processor subscription, if any."""
        if not stripe_subscription_id:
            return None
        try:
            subscription = await crud.account_subscription.get_by_stripe_subscription_id(
                db, stripe_subscription_id=stripe_subscription_id
            )
        except SQLAlchemyError as e:
            await self._fail(db, e, "look up subscription", None)
        return (
            schemas.Subscription.model_validate(subscription, from_attributes=True)
            if subscription
            else None
        )

    async def apply_update(
        self,
        db: AsyncSession,
        account_id: str,
        updates: SubscriptionUpdate,
        uow: Optional[UnitOfWork] = None,
        only_if: Optional[list[Any]] = None,
    ) -> int:
        """Overwrite the explicitly set fields of an account's subscription.

        Setting the pending-cancellation flag without a status keeps it only when the
        stored status allows it, evaluated inside the same statement. ``only_if`` adds
        WHERE criteria; the row is left untouched when they do not hold.

        Returns:
            Number of rows written (0 when the account has no record)
        """
        values: dict[str, Any] = normalize_update(updates).model_dump(exclude_unset=True)
        if values.get("status") is not None:
            values["status"] = SubscriptionStatus(values["status"]).value
        if values.get("cancel_at_period_end") and "status" not in values:
            values["cancel_at_period_end"] = case(
                (
                    AccountSubscription.status.in_([s.value for s in CANCELLABLE_STATUSES]),
                    True,
                ),
                else_=False,
            )
        if not values:
            return 0

        try:
            rows = await crud.account_subscription.update_by_account_id(
                db, account_id=account_id, values=values, only_if=only_if
            )
            if uow is None:
                await db.commit()
            return rows
        except SQLAlchemyError as e:
            await self._fail(db, e, "update subscription", uow)

    async def record_payment_failure(
        self,
        db: AsyncSession,
        account_id: str,
        message: str,
        failed_at: datetime,
        uow: Optional[UnitOfWork] = None,
    ) -> int:
        """Move to past_due and count the failure.

        The counter is incremented in SQL so concurrent deliveries never lose a count. A
        cancelled record is terminal and is not touched.

        Returns:
            Number of rows written (0 when the record is cancelled or missing)
        """
        values = {
            "status": SubscriptionStatus.PAST_DUE.value,
            "failed_payment_attempts": AccountSubscription.failed_payment_attempts + 1,
            "last_payment_error": message,
            "last_payment_error_at": failed_at,
        }
        try:
            rows = await crud.account_subscription.update_by_account_id(
                db,
                account_id=account_id,
                values=values,
                only_if=[AccountSubscription.status != SubscriptionStatus.CANCELLED.value],
            )
            if uow is None:
                await db.commit()
            return rows
        except SQLAlchemyError as e:
            await self._fail(db, e, "record payment failure", uow)

    async def mark_trial_extended(
        self,
        db: AsyncSession,
        account_id: str,
        new_trial_end: datetime,
        extended_at: datetime,
    ) -> bool:
        """Write the extended trial end, once.

        The extension flag is part of the WHERE clause, so of two concurrent extensions
        only one can match the row.

        Returns:
            True if this call set the flag, False if it was already set
        """
        values = {
            "trial_end": new_trial_end,
            "trial_extended": True,
            "trial_extended_at": extended_at,
        }
        try:
            rows = await crud.account_subscription.update_by_account_id(
                db,
                account_id=account_id,
                values=values,
                only_if=[
                    AccountSubscription.trial_extended.is_(False),
                    AccountSubscription.status == SubscriptionStatus.TRIALING.value,
                ],
            )
            await db.commit()
            return rows == 1
        except SQLAlchemyError as e:
            await self._fail(db, e, "extend trial", None)

    # Processed events

    async def is_event_processed(self, db: AsyncSession, stripe_event_id: str) -> bool:
        """Whether a processor event was already applied."""
        try:
            event = await crud.billing_event.get_by_stripe_event_id(
                db, stripe_event_id=stripe_event_id
            )
        except SQLAlchemyError as e:
            await self._fail(db, e, "look up billing event", None)
        return event is not None

    async def record_event(
        self,
        db: AsyncSession,
        event_in: schemas.BillingEventCreate,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Record a processed processor event.

        Returns:
            False if a concurrent delivery of the same event recorded it first
        """
        try:
            await crud.billing_event.create(db, obj_in=event_in, uow=uow)
            return True
        except IntegrityError:
            return False
        except SQLAlchemyError as e:
            await self._fail(db, e, "record billing event", uow)

    # Feedback

    async def create_cancellation_feedback(
        self, db: AsyncSession, feedback_in: schemas.CancellationFeedbackCreate
    ) -> schemas.CancellationFeedback:
        """Store cancellation feedback."""
        try:
            feedback = await crud.cancellation_feedback.create(db, obj_in=feedback_in)
        except SQLAlchemyError as e:
            await self._fail(db, e, "store cancellation feedback", None)
        return schemas.CancellationFeedback.model_validate(feedback, from_attributes=True)
