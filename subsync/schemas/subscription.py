"""Account subscription schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class SubscriptionStatus(str, Enum):
    """Local subscription status."""

    NONE = "none"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class SubscriptionUpdate(BaseModel):
    """Partial subscription write.

    Only explicitly set fields are written, so ``None`` clears a column while an unset
    field leaves it untouched.
    """

    stripe_subscription_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    plan_id: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
    started_at: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None
    cancelled_at: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    trial_extended: Optional[bool] = None
    trial_extended_at: Optional[datetime] = None
    failed_payment_attempts: Optional[int] = None
    last_payment_error: Optional[str] = None
    last_payment_error_at: Optional[datetime] = None


class Subscription(BaseModel):
    """Subscription mirror as stored for an account."""

    model_config = {"from_attributes": True}

    id: UUID
    account_id: str
    stripe_subscription_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    plan_id: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.NONE
    started_at: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    cancelled_at: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    trial_extended: bool = False
    trial_extended_at: Optional[datetime] = None
    failed_payment_attempts: int = 0
    last_payment_error: Optional[str] = None
    last_payment_error_at: Optional[datetime] = None
    created_at: datetime
    modified_at: datetime

    @property
    def has_subscription(self) -> bool:
        """Whether a processor subscription backs this record."""
        return bool(self.stripe_subscription_id)


# Request/Response schemas for API endpoints
class CheckoutSessionRequest(BaseModel):
    """Request to create a checkout session."""

    stripe_price_id: str = Field(..., description="Processor price to subscribe to")
    success_url: Optional[str] = Field(None, description="URL to redirect on successful payment")
    cancel_url: Optional[str] = Field(None, description="URL to redirect on cancellation")


class CheckoutSessionResponse(BaseModel):
    """Response with the hosted checkout session."""

    session_id: str = Field(..., description="Processor checkout session id")
    url: str = Field(..., description="Hosted checkout URL")


class ChangePlanRequest(BaseModel):
    """Request to move the subscription to another price."""

    stripe_price_id: str = Field(..., description="Processor price to switch to")


class PlanChangeResponse(BaseModel):
    """Summary of the plan after a change."""

    plan_id: str
    stripe_price_id: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


class CancelSubscriptionResponse(BaseModel):
    """Response for a scheduled cancellation."""

    cancel_at: Optional[datetime] = Field(
        None, description="When access ends (end of the current period)"
    )


class TrialExtensionResponse(BaseModel):
    """Response for a trial extension."""

    new_trial_end: datetime


class UpdatePaymentMethodRequest(BaseModel):
    """Request to replace the default payment method."""

    payment_method_id: str = Field(..., description="Processor payment method id")


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class Invoice(BaseModel):
    """Invoice as presented to the account holder."""

    id: str
    number: Optional[str] = None
    amount_paid: Decimal = Field(..., description="Amount paid in major currency units")
    currency: str
    status: Optional[str] = None
    created: datetime
    invoice_pdf: Optional[str] = None
    hosted_invoice_url: Optional[str] = None


class CancellationFeedbackRequest(BaseModel):
    """Feedback submitted while cancelling."""

    reason: str = Field(..., description="Selected cancellation reason")
    comments: Optional[str] = Field(None, description="Free-text comments")
    timestamp: Optional[datetime] = Field(None, description="Client-side submission time")

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        """Normalize surrounding whitespace."""
        return v.strip()


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the processor."""

    received: bool = True
    outcome: str
