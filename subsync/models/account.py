"""Account and account subscription models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from subsync.models._base import Base


class Account(Base):
    """An application account that may hold a subscription."""

    __tablename__ = "account"

    # Opaque identifier issued by the identity layer; also the processor correlation key
    account_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)

    # Created lazily on first checkout
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, unique=True)

    subscription: Mapped["AccountSubscription"] = relationship(
        "AccountSubscription",
        back_populates="account",
        uselist=False,
        lazy="noload",
    )


class AccountSubscription(Base):
    """Local mirror of the processor subscription for one account."""

    __tablename__ = "account_subscription"

    account_id: Mapped[str] = mapped_column(
        ForeignKey("account.account_id", ondelete="CASCADE"), unique=True, nullable=False
    )

    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    stripe_price_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    plan_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # none, trialing, active, past_due, cancelled
    status: Mapped[str] = mapped_column(String(50), default="none", nullable=False)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    current_period_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    current_period_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )

    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )

    # Trial tracking
    trial_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    trial_extended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    trial_extended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )

    # Dunning
    failed_payment_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_payment_error: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    last_payment_error_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )

    account: Mapped["Account"] = relationship(
        "Account", back_populates="subscription", lazy="noload"
    )

    __table_args__ = (
        Index("idx_account_subscription_stripe_subscription", "stripe_subscription_id"),
    )
