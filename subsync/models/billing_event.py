"""Billing event model for webhook idempotency and audit trail."""

from typing import Optional

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from subsync.models._base import Base


class BillingEvent(Base):
    """Record of a processed processor event."""

    __tablename__ = "billing_event"

    event_type: Mapped[str] = mapped_column(
        String(100), nullable=False
    )  # checkout.session.completed, invoice.payment_failed, etc.

    stripe_event_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # Null when the event could not be correlated to an account
    account_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    event_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_billing_events_account", "account_id"),
        Index("idx_billing_events_type", "event_type"),
    )
