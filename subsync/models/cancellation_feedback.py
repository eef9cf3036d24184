"""Cancellation feedback model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from subsync.models._base import Base


class CancellationFeedback(Base):
    """Reason an account gave for cancelling."""

    __tablename__ = "cancellation_feedback"

    account_id: Mapped[str] = mapped_column(
        ForeignKey("account.account_id", ondelete="CASCADE"), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamp reported by the client, kept alongside created_at
    client_timestamp: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
