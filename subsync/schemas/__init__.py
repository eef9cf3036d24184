# flake8: noqa: F401
"""Schemas for the application."""

from .account import Account, AccountCreate, AccountUpdate
from .billing_event import (
    HANDLED_EVENT_TYPES,
    BillingEvent,
    BillingEventCreate,
    CheckoutSessionCompletedEvent,
    InvoicePaymentFailedEvent,
    InvoicePaymentSucceededEvent,
    StripeCheckoutSessionObject,
    StripeEventEnvelope,
    StripeInvoiceObject,
    StripeSubscriptionObject,
    SubscriptionDeletedEvent,
    SubscriptionUpdatedEvent,
    WebhookEvent,
    webhook_event_adapter,
)
from .cancellation_feedback import CancellationFeedback, CancellationFeedbackCreate
from .plan import Plan, PlanCreate, PlanPriceCreate
from .subscription import (
    CancellationFeedbackRequest,
    CancelSubscriptionResponse,
    ChangePlanRequest,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    Invoice,
    MessageResponse,
    PlanChangeResponse,
    Subscription,
    SubscriptionStatus,
    SubscriptionUpdate,
    TrialExtensionResponse,
    UpdatePaymentMethodRequest,
    WebhookResponse,
)
