"""Pure business rules for subscription state.

This module contains the rules that decide which mutations are allowed and how
processor data maps onto the local record, separated from the database and the
processor client.
"""

from datetime import datetime, timedelta
from typing import Optional

from subsync.core.datetime_utils import from_unix_timestamp
from subsync.core.exceptions import AlreadyExtendedException, PreconditionFailedException
from subsync.schemas.billing_event import StripeSubscriptionObject
from subsync.schemas.subscription import Subscription, SubscriptionStatus, SubscriptionUpdate

# Statuses in which a pending cancellation is meaningful
CANCELLABLE_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE})

PLAN_CHANGE_STATUSES = frozenset(
    {SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE}
)

_PROCESSOR_STATUS_MAP = {
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
}


def map_processor_status(status: str) -> SubscriptionStatus:
    """Map a processor subscription status onto the local status set.

    Unknown statuses map to ``past_due`` so that access is not granted on a state the
    rules do not understand.
    """
    return _PROCESSOR_STATUS_MAP.get(status, SubscriptionStatus.PAST_DUE)


def normalize_update(updates: SubscriptionUpdate) -> SubscriptionUpdate:
    """Force the pending-cancellation flag off for statuses where it is meaningless."""
    fields = updates.model_dump(exclude_unset=True)
    status = fields.get("status")
    if status is not None and status not in CANCELLABLE_STATUSES:
        fields["cancel_at_period_end"] = False
    return SubscriptionUpdate(**fields)


def build_snapshot_update(
    subscription: StripeSubscriptionObject,
    plan_id: str,
    price_id: str,
    started_at: datetime,
) -> SubscriptionUpdate:
    """Fresh record for a subscription created by checkout.

    Dunning and trial-extension state start over.
    """
    return normalize_update(
        SubscriptionUpdate(
            stripe_subscription_id=subscription.id,
            plan_id=plan_id,
            stripe_price_id=price_id,
            status=map_processor_status(subscription.status),
            started_at=started_at,
            current_period_start=from_unix_timestamp(subscription.period_start),
            current_period_end=from_unix_timestamp(subscription.period_end),
            cancel_at_period_end=False,
            cancelled_at=None,
            trial_end=from_unix_timestamp(subscription.trial_end),
            trial_extended=False,
            trial_extended_at=None,
            failed_payment_attempts=0,
            last_payment_error=None,
            last_payment_error_at=None,
        )
    )


def build_sync_update(
    subscription: StripeSubscriptionObject,
    plan_id: Optional[str] = None,
    price_id: Optional[str] = None,
) -> SubscriptionUpdate:
    """Overwrite of the processor-owned fields from an updated subscription.

    Plan and price are only written when given.
    """
    updates = SubscriptionUpdate(
        status=map_processor_status(subscription.status),
        current_period_start=from_unix_timestamp(subscription.period_start),
        current_period_end=from_unix_timestamp(subscription.period_end),
        cancel_at_period_end=subscription.cancel_at_period_end,
        trial_end=from_unix_timestamp(subscription.trial_end),
    )
    if plan_id is not None and price_id is not None:
        updates.plan_id = plan_id
        updates.stripe_price_id = price_id
    return normalize_update(updates)


def price_changed(current: Subscription, new_price_id: Optional[str]) -> bool:
    """Whether the processor now bills a different price than the one stored."""
    return bool(new_price_id) and new_price_id != current.stripe_price_id


# Mutation guards


def ensure_can_change_plan(current: Subscription) -> None:
    """Plan changes need a live subscription."""
    if not current.has_subscription or current.status not in PLAN_CHANGE_STATUSES:
        raise PreconditionFailedException("No active subscription to change")


def ensure_can_cancel(current: Subscription) -> None:
    """Cancellation is scheduled on paid subscriptions only."""
    if not current.has_subscription:
        raise PreconditionFailedException("No active subscription")
    if current.status == SubscriptionStatus.TRIALING:
        raise PreconditionFailedException(
            "Subscription cannot be cancelled during the trial; "
            "cancel once the trial has converted to a paid subscription"
        )
    if current.status not in CANCELLABLE_STATUSES:
        raise PreconditionFailedException(
            f"Subscription cannot be cancelled while {current.status.value}"
        )


def ensure_can_reactivate(current: Subscription) -> None:
    """Reactivation undoes a scheduled cancellation."""
    if not current.has_subscription:
        raise PreconditionFailedException("No subscription found")
    if not current.cancel_at_period_end:
        raise PreconditionFailedException("Subscription is not scheduled for cancellation")


def ensure_can_extend_trial(current: Subscription) -> None:
    """The trial can be extended once, while trialing."""
    if not current.has_subscription:
        raise PreconditionFailedException("No subscription found")
    if current.status != SubscriptionStatus.TRIALING:
        raise PreconditionFailedException("Subscription is not in trial")
    if current.trial_extended:
        raise AlreadyExtendedException()


def extended_trial_end(trial_end: datetime, days: int) -> datetime:
    """New trial end after an extension."""
    return trial_end + timedelta(days=days)
