"""Models for the application."""

from .account import Account, AccountSubscription
from .billing_event import BillingEvent
from .cancellation_feedback import CancellationFeedback
from .plan import Plan, PlanPrice

__all__ = [
    "Account",
    "AccountSubscription",
    "BillingEvent",
    "CancellationFeedback",
    "Plan",
    "PlanPrice",
]
