"""Billing event schemas.

Processor webhook payloads are parsed into one tagged variant per handled event kind.
Only the fields the processor is known to send for that kind are modelled; anything
else in the payload is ignored.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter


class BillingEventBase(BaseModel):
    """Billing event base schema."""

    event_type: str = Field(..., description="Type of billing event")
    event_data: Dict[str, Any] = Field(default_factory=dict, description="Event data")
    stripe_event_id: str = Field(..., description="Processor event id")


class BillingEventCreate(BillingEventBase):
    """Billing event creation schema."""

    account_id: Optional[str] = Field(None, description="Correlated account, if any")


class BillingEvent(BillingEventBase):
    """Billing event schema."""

    model_config = {"from_attributes": True}

    id: UUID
    account_id: Optional[str] = None
    created_at: datetime


# Processor payload objects


class StripePriceRef(BaseModel):
    """Price reference on a subscription item."""

    id: str


class StripeSubscriptionItem(BaseModel):
    """Subscription line item."""

    id: str
    price: StripePriceRef
    # Newer API versions report period bounds per item
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class StripeSubscriptionItems(BaseModel):
    """List wrapper for subscription items."""

    data: List[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscriptionObject(BaseModel):
    """Subscription object carried by ``customer.subscription.*`` events."""

    id: str
    status: str
    customer: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    cancel_at_period_end: bool = False
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    trial_end: Optional[int] = None
    items: StripeSubscriptionItems = Field(default_factory=StripeSubscriptionItems)

    @property
    def price_id(self) -> Optional[str]:
        """Price of the first line item."""
        return self.items.data[0].price.id if self.items.data else None

    @property
    def period_start(self) -> Optional[int]:
        """Period start, falling back to the first item."""
        if self.current_period_start is not None:
            return self.current_period_start
        return self.items.data[0].current_period_start if self.items.data else None

    @property
    def period_end(self) -> Optional[int]:
        """Period end, falling back to the first item."""
        if self.current_period_end is not None:
            return self.current_period_end
        return self.items.data[0].current_period_end if self.items.data else None


class StripeCheckoutSessionObject(BaseModel):
    """Checkout session object carried by ``checkout.session.completed``."""

    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    mode: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class StripeFinalizationError(BaseModel):
    """Error recorded on an invoice that failed to finalize or collect."""

    message: Optional[str] = None


class StripeInvoiceSubscriptionDetails(BaseModel):
    """Subscription details attached to an invoice."""

    subscription: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class StripeInvoiceParent(BaseModel):
    """Invoice parent block used by newer API versions."""

    subscription_details: Optional[StripeInvoiceSubscriptionDetails] = None


class StripeInvoiceObject(BaseModel):
    """Invoice object carried by ``invoice.payment_*`` events."""

    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    subscription_details: Optional[StripeInvoiceSubscriptionDetails] = None
    parent: Optional[StripeInvoiceParent] = None
    last_finalization_error: Optional[StripeFinalizationError] = None
    attempt_count: Optional[int] = None

    def _details(self) -> Optional[StripeInvoiceSubscriptionDetails]:
        if self.parent and self.parent.subscription_details:
            return self.parent.subscription_details
        return self.subscription_details

    @property
    def subscription_id(self) -> Optional[str]:
        """Subscription the invoice belongs to, if any."""
        if self.subscription:
            return self.subscription
        details = self._details()
        return details.subscription if details else None

    @property
    def failure_message(self) -> str:
        """Human readable failure reason."""
        if self.last_finalization_error and self.last_finalization_error.message:
            return self.last_finalization_error.message
        return "Payment failed"


class CheckoutSessionEventData(BaseModel):
    """Event data wrapper."""

    object: StripeCheckoutSessionObject


class SubscriptionEventData(BaseModel):
    """Event data wrapper."""

    object: StripeSubscriptionObject


class InvoiceEventData(BaseModel):
    """Event data wrapper."""

    object: StripeInvoiceObject


# Tagged event variants


class StripeEventEnvelope(BaseModel):
    """Fields common to every processor event."""

    id: str
    type: str
    created: Optional[int] = None
    livemode: bool = False


class CheckoutSessionCompletedEvent(StripeEventEnvelope):
    """A hosted checkout finished and created a subscription."""

    type: Literal["checkout.session.completed"]
    data: CheckoutSessionEventData


class SubscriptionUpdatedEvent(StripeEventEnvelope):
    """Subscription fields changed at the processor."""

    type: Literal["customer.subscription.updated"]
    data: SubscriptionEventData


class SubscriptionDeletedEvent(StripeEventEnvelope):
    """Subscription terminated at the processor."""

    type: Literal["customer.subscription.deleted"]
    data: SubscriptionEventData


class InvoicePaymentFailedEvent(StripeEventEnvelope):
    """A renewal charge failed."""

    type: Literal["invoice.payment_failed"]
    data: InvoiceEventData


class InvoicePaymentSucceededEvent(StripeEventEnvelope):
    """A charge succeeded."""

    type: Literal["invoice.payment_succeeded"]
    data: InvoiceEventData


WebhookEvent = Annotated[
    Union[
        CheckoutSessionCompletedEvent,
        SubscriptionUpdatedEvent,
        SubscriptionDeletedEvent,
        InvoicePaymentFailedEvent,
        InvoicePaymentSucceededEvent,
    ],
    Field(discriminator="type"),
]

webhook_event_adapter = TypeAdapter(WebhookEvent)

HANDLED_EVENT_TYPES = frozenset(
    {
        "checkout.session.completed",
        "customer.subscription.updated",
        "customer.subscription.deleted",
        "invoice.payment_failed",
        "invoice.payment_succeeded",
    }
)
