"""Subscription mutation service.

This module coordinates caller-invoked subscription operations by orchestrating between
the business rules, the repository, the plan catalog and the Stripe client. Each
mutation updates the processor first and then writes its own mirror of the result.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from subsync import schemas
from subsync.api.context import ApiContext
from subsync.core.config import settings
from subsync.core.datetime_utils import from_unix_timestamp, to_unix_timestamp, utc_now_naive
from subsync.core.exceptions import (
    AlreadyExtendedException,
    ExternalServiceError,
    InvalidInputException,
    PreconditionFailedException,
)
from subsync.integrations.stripe_client import StripeClient, extract_subscription_item_id
from subsync.platform.billing.billing_data_access import SubscriptionRepository
from subsync.platform.billing.plan_catalog import PlanCatalog, plan_catalog
from subsync.platform.billing.subscription_logic import (
    ensure_can_cancel,
    ensure_can_change_plan,
    ensure_can_extend_trial,
    ensure_can_reactivate,
    extended_trial_end,
)
from subsync.schemas.subscription import SubscriptionStatus, SubscriptionUpdate


class SubscriptionService:
    """Service for caller-invoked subscription operations."""

    def __init__(
        self,
        stripe_client: StripeClient,
        repository: Optional[SubscriptionRepository] = None,
        catalog: Optional[PlanCatalog] = None,
    ):
        """Initialize subscription service.

        Args:
        ----
            stripe_client (StripeClient): Processor client used for all remote calls.
            repository (SubscriptionRepository, optional): Store access.
            catalog (PlanCatalog, optional): Price to plan resolver.

        """
        self.stripe = stripe_client
        self.repository = repository or SubscriptionRepository()
        self.catalog = catalog or plan_catalog

    # Checkout

    async def start_checkout(
        self,
        db: AsyncSession,
        ctx: ApiContext,
        account_id: str,
        stripe_price_id: str,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> schemas.CheckoutSessionResponse:
        """Start a hosted checkout for a price.

        The price is resolved first so that no session is created for a price the
        catalog cannot mirror. The subscription itself is written by the checkout
        completion webhook, not here.
        """
        ctx.ensure_may_act_on(account_id)
        if not stripe_price_id:
            raise InvalidInputException("stripe_price_id is required")
        log = ctx.logger.with_context(operation="start_checkout")

        plan_id = await self.catalog.resolve_plan(db, stripe_price_id)
        account = await self.repository.get_account(db, account_id)

        customer_id = account.stripe_customer_id
        if not customer_id:
            customer_id = await self.stripe.create_customer(account_id, account.email)
            await self.repository.set_customer_id(db, account_id, customer_id)
            log.info(f"Created customer {customer_id}")

        session = await self.stripe.create_checkout_session(
            customer_id=customer_id,
            price_id=stripe_price_id,
            success_url=success_url or settings.checkout_success_url,
            cancel_url=cancel_url or settings.checkout_cancel_url,
            metadata={"account_id": account_id},
            trial_period_days=settings.CHECKOUT_TRIAL_PERIOD_DAYS,
        )

        log.info(f"Created checkout session {session.session_id} for plan {plan_id}")
        return session

    # Plan change

    async def change_plan(
        self,
        db: AsyncSession,
        ctx: ApiContext,
        account_id: str,
        new_stripe_price_id: str,
    ) -> schemas.PlanChangeResponse:
        """Move the subscription to another price with prorations."""
        ctx.ensure_may_act_on(account_id)
        if not new_stripe_price_id:
            raise InvalidInputException("stripe_price_id is required")
        log = ctx.logger.with_context(operation="change_plan")

        current = await self.repository.get_subscription(db, account_id)
        ensure_can_change_plan(current)
        plan_id = await self.catalog.resolve_plan(db, new_stripe_price_id)

        remote = await self.stripe.get_subscription(current.stripe_subscription_id)
        item_id = extract_subscription_item_id(remote)
        if not item_id:
            raise ExternalServiceError(
                service_name="Stripe",
                message=f"Subscription {current.stripe_subscription_id} has no items",
            )

        updated = await self.stripe.update_subscription(
            current.stripe_subscription_id,
            items=[{"id": item_id, "price": new_stripe_price_id}],
            proration_behavior="create_prorations",
        )

        period_start = from_unix_timestamp(updated.period_start)
        period_end = from_unix_timestamp(updated.period_end)
        await self.repository.apply_update(
            db,
            account_id,
            SubscriptionUpdate(
                plan_id=plan_id,
                stripe_price_id=new_stripe_price_id,
                current_period_start=period_start,
                current_period_end=period_end,
            ),
        )

        log.info(f"Changed plan from {current.plan_id} to {plan_id}")
        return schemas.PlanChangeResponse(
            plan_id=plan_id,
            stripe_price_id=new_stripe_price_id,
            current_period_start=period_start,
            current_period_end=period_end,
        )

    # Cancellation

    async def cancel_subscription(
        self, db: AsyncSession, ctx: ApiContext, account_id: str
    ) -> schemas.CancelSubscriptionResponse:
        """Schedule cancellation at the end of the current period.

        Status is left alone; the subscription stays usable until the processor
        reports it deleted.
        """
        ctx.ensure_may_act_on(account_id)
        log = ctx.logger.with_context(operation="cancel_subscription")

        current = await self.repository.get_subscription(db, account_id)
        ensure_can_cancel(current)

        updated = await self.stripe.update_subscription(
            current.stripe_subscription_id, cancel_at_period_end=True
        )

        await self.repository.apply_update(
            db,
            account_id,
            SubscriptionUpdate(cancel_at_period_end=True, cancelled_at=utc_now_naive()),
        )

        cancel_at = from_unix_timestamp(updated.period_end) or current.current_period_end
        log.info(f"Subscription scheduled to cancel at {cancel_at}")
        return schemas.CancelSubscriptionResponse(cancel_at=cancel_at)

    async def reactivate_subscription(
        self, db: AsyncSession, ctx: ApiContext, account_id: str
    ) -> schemas.MessageResponse:
        """Undo a scheduled cancellation."""
        ctx.ensure_may_act_on(account_id)
        log = ctx.logger.with_context(operation="reactivate_subscription")

        current = await self.repository.get_subscription(db, account_id)
        ensure_can_reactivate(current)

        await self.stripe.update_subscription(
            current.stripe_subscription_id, cancel_at_period_end=False
        )

        await self.repository.apply_update(
            db,
            account_id,
            SubscriptionUpdate(
                status=SubscriptionStatus.ACTIVE,
                cancel_at_period_end=False,
                cancelled_at=None,
            ),
        )

        log.info("Subscription reactivated")
        return schemas.MessageResponse(message="Subscription reactivated successfully")

    # Trial extension

    async def extend_trial(
        self, db: AsyncSession, ctx: ApiContext, account_id: str
    ) -> schemas.TrialExtensionResponse:
        """Extend the trial once by ``settings.TRIAL_EXTENSION_DAYS``.

        The new end is computed from the processor's trial end, not the mirror. The
        local write sets the date and the flag in one conditional statement.
        """
        ctx.ensure_may_act_on(account_id)
        log = ctx.logger.with_context(operation="extend_trial")

        current = await self.repository.get_subscription(db, account_id)
        ensure_can_extend_trial(current)

        remote = await self.stripe.get_subscription(current.stripe_subscription_id)
        if remote.trial_end is None:
            raise PreconditionFailedException("Subscription has no trial end")

        new_trial_end = extended_trial_end(
            from_unix_timestamp(remote.trial_end), settings.TRIAL_EXTENSION_DAYS
        )
        await self.stripe.update_subscription(
            current.stripe_subscription_id,
            trial_end=to_unix_timestamp(new_trial_end),
            proration_behavior="none",
        )

        extended = await self.repository.mark_trial_extended(
            db, account_id, new_trial_end, utc_now_naive()
        )
        if not extended:
            log.warning("Trial extension raced with another extension")
            raise AlreadyExtendedException()

        log.info(f"Trial extended to {new_trial_end}")
        return schemas.TrialExtensionResponse(new_trial_end=new_trial_end)

    # Payment method

    async def update_payment_method(
        self,
        db: AsyncSession,
        ctx: ApiContext,
        account_id: str,
        payment_method_id: str,
    ) -> schemas.MessageResponse:
        """Replace the default payment method for future invoices.

        Attach, customer default, subscription default. Each step is safe to repeat,
        so a failed call is fixed by retrying the whole operation.
        """
        ctx.ensure_may_act_on(account_id)
        if not payment_method_id:
            raise InvalidInputException("payment_method_id is required")
        log = ctx.logger.with_context(operation="update_payment_method")

        account = await self.repository.get_account(db, account_id)
        current = await self.repository.get_subscription(db, account_id)
        if not account.stripe_customer_id or not current.has_subscription:
            raise PreconditionFailedException("No active subscription found")

        await self.stripe.attach_payment_method(payment_method_id, account.stripe_customer_id)
        await self.stripe.set_default_payment_method(
            account.stripe_customer_id, payment_method_id
        )
        await self.stripe.update_subscription(
            current.stripe_subscription_id, default_payment_method=payment_method_id
        )

        log.info("Payment method updated")
        return schemas.MessageResponse(message="Payment method updated successfully")

    # Reads

    async def get_subscription(
        self, db: AsyncSession, ctx: ApiContext, account_id: str
    ) -> schemas.Subscription:
        """Current subscription mirror of an account."""
        ctx.ensure_may_act_on(account_id)
        return await self.repository.get_subscription(db, account_id)

    async def list_invoices(
        self, db: AsyncSession, ctx: ApiContext, account_id: str
    ) -> list[schemas.Invoice]:
        """Invoices of the last ``settings.INVOICE_LOOKBACK_DAYS``, newest first."""
        ctx.ensure_may_act_on(account_id)
        account = await self.repository.get_account(db, account_id)
        if not account.stripe_customer_id:
            return []

        since = utc_now_naive() - timedelta(days=settings.INVOICE_LOOKBACK_DAYS)
        return await self.stripe.list_invoices(account.stripe_customer_id, since, limit=100)

    # Feedback

    async def submit_cancellation_feedback(
        self,
        db: AsyncSession,
        ctx: ApiContext,
        account_id: str,
        feedback: schemas.CancellationFeedbackRequest,
    ) -> schemas.MessageResponse:
        """Store why an account is cancelling."""
        ctx.ensure_may_act_on(account_id)
        if not feedback.reason:
            raise InvalidInputException("reason is required")

        await self.repository.get_account(db, account_id)
        await self.repository.create_cancellation_feedback(
            db,
            schemas.CancellationFeedbackCreate(
                account_id=account_id,
                reason=feedback.reason,
                comments=feedback.comments,
                client_timestamp=feedback.timestamp,
            ),
        )

        ctx.logger.with_context(operation="submit_cancellation_feedback").info(
            f"Cancellation feedback received: {feedback.reason}"
        )
        return schemas.MessageResponse(message="Feedback submitted successfully")
