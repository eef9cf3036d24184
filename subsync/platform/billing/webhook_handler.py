"""Webhook processor for Stripe billing events.

This module handles incoming Stripe webhook events and delegates to one handler per
event kind. Every applied event is recorded in the same transaction as its write, so a
redelivered event is acknowledged without being applied twice.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from subsync import schemas
from subsync.core.datetime_utils import utc_now_naive
from subsync.core.exceptions import (
    AccountNotFoundException,
    ExternalServiceTimeoutError,
    SignatureVerificationException,
)
from subsync.core.logging import ContextualLogger, logger
from subsync.db.unit_of_work import UnitOfWork
from subsync.integrations.stripe_client import StripeClient
from subsync.models import AccountSubscription
from subsync.platform.billing.billing_data_access import SubscriptionRepository
from subsync.platform.billing.notifications import Notifier, dispatch
from subsync.platform.billing.plan_catalog import PlanCatalog, plan_catalog
from subsync.platform.billing.subscription_logic import (
    build_snapshot_update,
    build_sync_update,
    price_changed,
)
from subsync.schemas.billing_event import (
    HANDLED_EVENT_TYPES,
    CheckoutSessionCompletedEvent,
    InvoicePaymentFailedEvent,
    InvoicePaymentSucceededEvent,
    StripeEventEnvelope,
    StripeInvoiceObject,
    StripeSubscriptionObject,
    SubscriptionDeletedEvent,
    SubscriptionUpdatedEvent,
    webhook_event_adapter,
)
from subsync.schemas.subscription import SubscriptionStatus, SubscriptionUpdate

OUTCOME_PROCESSED = "processed"
OUTCOME_IGNORED = "ignored"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_REJECTED = "rejected"
OUTCOME_RETRY = "retry"

Write = Callable[[UnitOfWork], Awaitable[None]]


@dataclass
class WebhookResult:
    """Decision returned to the processor for one delivery."""

    status_code: int
    outcome: str
    detail: Optional[str] = None

    @property
    def acknowledged(self) -> bool:
        """Whether the delivery is acknowledged (no redelivery)."""
        return self.status_code < 300


class _DuplicateDelivery(Exception):
    """A concurrent delivery of the same event committed first."""


class BillingWebhookProcessor:
    """Process Stripe webhook events for billing."""

    def __init__(
        self,
        db: AsyncSession,
        stripe_client: StripeClient,
        notifier: Notifier,
        repository: Optional[SubscriptionRepository] = None,
        catalog: Optional[PlanCatalog] = None,
    ):
        """Initialize webhook processor."""
        self.db = db
        self.stripe = stripe_client
        self.notifier = notifier
        self.repository = repository or SubscriptionRepository()
        self.catalog = catalog or plan_catalog

        # Event handler mapping
        self.handlers = {
            "checkout.session.completed": self._handle_checkout_completed,
            "customer.subscription.updated": self._handle_subscription_updated,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "invoice.payment_failed": self._handle_payment_failed,
            "invoice.payment_succeeded": self._handle_payment_succeeded,
        }

    async def handle(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        """Verify, parse and apply one delivery.

        Never raises: every failure is turned into a rejection the processor will retry
        (5xx) or not (400).
        """
        if not signature:
            logger.warning("Webhook rejected: missing signature header")
            return WebhookResult(400, OUTCOME_REJECTED, "Missing signature header")

        try:
            self.stripe.verify_webhook_signature(payload, signature)
        except SignatureVerificationException as e:
            logger.warning(f"Webhook rejected: {e.message}")
            return WebhookResult(400, OUTCOME_REJECTED, e.message)

        try:
            envelope = StripeEventEnvelope.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(f"Webhook rejected: malformed event envelope: {e}")
            return WebhookResult(400, OUTCOME_REJECTED, "Malformed event")

        log = logger.with_context(
            auth_method="stripe_webhook",
            event_type=envelope.type,
            stripe_event_id=envelope.id,
        )

        if envelope.type not in HANDLED_EVENT_TYPES:
            log.info(f"Unhandled webhook event type: {envelope.type}")
            return WebhookResult(200, OUTCOME_IGNORED)

        try:
            event = webhook_event_adapter.validate_json(payload)
        except ValidationError as e:
            log.error(f"Malformed {envelope.type} payload: {e}")
            return WebhookResult(400, OUTCOME_REJECTED, "Malformed event payload")

        try:
            if await self.repository.is_event_processed(self.db, event.id):
                log.info("Event already processed")
                return WebhookResult(200, OUTCOME_DUPLICATE)

            log.info(f"Processing webhook event: {event.type}")
            outcome = await self.handlers[event.type](event, log)
            return WebhookResult(200, outcome)
        except ExternalServiceTimeoutError as e:
            await self.db.rollback()
            log.warning(f"Timed out handling {event.type}: {e}")
            return WebhookResult(503, OUTCOME_RETRY, str(e))
        except Exception as e:
            await self.db.rollback()
            log.error(f"Error handling {event.type}: {e}", exc_info=True)
            return WebhookResult(500, OUTCOME_RETRY, str(e))

    async def _apply(
        self,
        event: StripeEventEnvelope,
        account_id: Optional[str],
        event_data: dict,
        write: Write,
        log: ContextualLogger,
    ) -> str:
        """Record the event and run its write in one transaction."""
        try:
            async with UnitOfWork(self.db) as uow:
                recorded = await self.repository.record_event(
                    self.db,
                    schemas.BillingEventCreate(
                        event_type=event.type,
                        stripe_event_id=event.id,
                        account_id=account_id,
                        event_data=event_data,
                    ),
                    uow=uow,
                )
                if not recorded:
                    raise _DuplicateDelivery()
                await write(uow)
        except _DuplicateDelivery:
            log.info("Event recorded by a concurrent delivery")
            return OUTCOME_DUPLICATE
        return OUTCOME_PROCESSED

    # Account lookup

    async def _subscription_for_account(
        self, account_id: str, log: ContextualLogger
    ) -> Optional[schemas.Subscription]:
        try:
            return await self.repository.get_subscription(self.db, account_id)
        except AccountNotFoundException:
            log.warning(f"Account {account_id} from event metadata not found")
            return None

    async def _locate_by_subscription(
        self, subscription: StripeSubscriptionObject, log: ContextualLogger
    ) -> Optional[schemas.Subscription]:
        """Find the record for a subscription event: metadata first, then stored id.

        Only checkout completion turns an empty record into a subscription, so a record
        that mirrors no subscription or another one is not touched.
        """
        current = None
        account_id = subscription.metadata.get("account_id")
        if account_id:
            current = await self._subscription_for_account(account_id, log)
        if current is None:
            current = await self.repository.find_by_stripe_subscription(
                self.db, subscription.id
            )

        if current is None:
            log.warning(f"No account found for subscription {subscription.id}")
            return None
        if current.stripe_subscription_id != subscription.id:
            log.info(
                f"Account {current.account_id} does not mirror subscription {subscription.id}"
            )
            return None
        return current

    async def _locate_by_invoice(
        self, invoice: StripeInvoiceObject, log: ContextualLogger
    ) -> Optional[schemas.Subscription]:
        """Find the record mirroring the invoice's subscription.

        Invoices for a subscription whose checkout has not been mirrored yet are not
        applied; the checkout snapshot starts dunning state over anyway. Neither are
        invoices arriving after the subscription was deleted, since cancelled is terminal.
        """
        current = await self.repository.find_by_stripe_subscription(
            self.db, invoice.subscription_id
        )
        if current is None:
            log.info(f"No account mirrors subscription {invoice.subscription_id}")
            return None
        if current.status == SubscriptionStatus.CANCELLED:
            log.info(f"Ignoring invoice {invoice.id} for cancelled subscription")
            return None
        return current

    # Event handlers

    async def _handle_checkout_completed(
        self, event: CheckoutSessionCompletedEvent, log: ContextualLogger
    ) -> str:
        """Write a fresh subscription for a completed checkout."""
        session = event.data.object

        account_id = session.metadata.get("account_id")
        if not account_id:
            log.error(f"No account_id in checkout session {session.id} metadata")
            return OUTCOME_IGNORED
        if not session.subscription:
            log.info(f"Checkout session {session.id} created no subscription")
            return OUTCOME_IGNORED

        log = log.with_context(account_id=account_id)
        current = await self._subscription_for_account(account_id, log)
        if current is None:
            return OUTCOME_IGNORED

        subscription = await self.stripe.get_subscription(session.subscription)
        price_id = subscription.price_id
        plan_id = await self.catalog.resolve_plan(self.db, price_id)
        updates = build_snapshot_update(subscription, plan_id, price_id, utc_now_naive())

        async def write(uow: UnitOfWork) -> None:
            await self.repository.apply_update(self.db, account_id, updates, uow=uow)

        outcome = await self._apply(
            event,
            account_id,
            {"session_id": session.id, "subscription_id": subscription.id, "plan_id": plan_id},
            write,
            log,
        )
        if outcome == OUTCOME_PROCESSED:
            log.info(f"Subscription {subscription.id} activated on plan {plan_id}")
            account = await self.repository.get_account(self.db, account_id)
            dispatch(
                self.notifier.subscription_activated(account_id, account.email, plan_id), log
            )
        return outcome

    async def _handle_subscription_updated(
        self, event: SubscriptionUpdatedEvent, log: ContextualLogger
    ) -> str:
        """Mirror processor-owned fields; plan only when the price changed."""
        subscription = event.data.object

        current = await self._locate_by_subscription(subscription, log)
        if current is None:
            return OUTCOME_IGNORED

        account_id = current.account_id
        log = log.with_context(account_id=account_id)

        if price_changed(current, subscription.price_id):
            plan_id = await self.catalog.resolve_plan(self.db, subscription.price_id)
            log.info(f"Plan changed from {current.plan_id} to {plan_id}")
            updates = build_sync_update(subscription, plan_id, subscription.price_id)
        else:
            updates = build_sync_update(subscription)

        async def write(uow: UnitOfWork) -> None:
            await self.repository.apply_update(self.db, account_id, updates, uow=uow)

        outcome = await self._apply(
            event,
            account_id,
            {"subscription_id": subscription.id, "status": subscription.status},
            write,
            log,
        )
        log.info(f"Subscription {subscription.id} updated: {subscription.status}")
        return outcome

    async def _handle_subscription_deleted(
        self, event: SubscriptionDeletedEvent, log: ContextualLogger
    ) -> str:
        """Mark the subscription cancelled."""
        subscription = event.data.object

        current = await self._locate_by_subscription(subscription, log)
        if current is None:
            return OUTCOME_IGNORED

        account_id = current.account_id
        log = log.with_context(account_id=account_id)
        updates = SubscriptionUpdate(
            status=SubscriptionStatus.CANCELLED, cancel_at_period_end=False
        )

        async def write(uow: UnitOfWork) -> None:
            await self.repository.apply_update(self.db, account_id, updates, uow=uow)

        outcome = await self._apply(
            event, account_id, {"subscription_id": subscription.id}, write, log
        )
        log.info(f"Subscription {subscription.id} cancelled")
        return outcome

    async def _handle_payment_failed(
        self, event: InvoicePaymentFailedEvent, log: ContextualLogger
    ) -> str:
        """Move to past_due and count the failure."""
        invoice = event.data.object
        if not invoice.subscription_id:
            log.info(f"Invoice {invoice.id} has no subscription")
            return OUTCOME_IGNORED

        current = await self._locate_by_invoice(invoice, log)
        if current is None:
            return OUTCOME_IGNORED

        account_id = current.account_id
        log = log.with_context(account_id=account_id)
        message = invoice.failure_message

        async def write(uow: UnitOfWork) -> None:
            await self.repository.record_payment_failure(
                self.db, account_id, message, utc_now_naive(), uow=uow
            )

        outcome = await self._apply(
            event,
            account_id,
            {"invoice_id": invoice.id, "attempt_count": invoice.attempt_count},
            write,
            log,
        )
        if outcome == OUTCOME_PROCESSED:
            log.warning(f"Payment failed for invoice {invoice.id}: {message}")
            account = await self.repository.get_account(self.db, account_id)
            dispatch(self.notifier.payment_failed(account_id, account.email, message), log)
        return outcome

    async def _handle_payment_succeeded(
        self, event: InvoicePaymentSucceededEvent, log: ContextualLogger
    ) -> str:
        """Clear dunning state."""
        invoice = event.data.object
        if not invoice.subscription_id:
            log.info(f"Invoice {invoice.id} has no subscription")
            return OUTCOME_IGNORED

        current = await self._locate_by_invoice(invoice, log)
        if current is None:
            return OUTCOME_IGNORED

        account_id = current.account_id
        log = log.with_context(account_id=account_id)
        updates = SubscriptionUpdate(
            status=SubscriptionStatus.ACTIVE,
            failed_payment_attempts=0,
            last_payment_error=None,
            last_payment_error_at=None,
        )

        async def write(uow: UnitOfWork) -> None:
            await self.repository.apply_update(
                self.db,
                account_id,
                updates,
                uow=uow,
                only_if=[AccountSubscription.status != SubscriptionStatus.CANCELLED.value],
            )

        outcome = await self._apply(event, account_id, {"invoice_id": invoice.id}, write, log)
        log.info(f"Payment succeeded for invoice {invoice.id}")
        return outcome
