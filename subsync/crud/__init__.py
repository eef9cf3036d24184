"""CRUD operations for the application."""

from .crud_account import account
from .crud_account_subscription import account_subscription
from .crud_billing_event import billing_event
from .crud_cancellation_feedback import cancellation_feedback
from .crud_plan import plan

__all__ = [
    "account",
    "account_subscription",
    "billing_event",
    "cancellation_feedback",
    "plan",
]
