"""Cancellation feedback schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CancellationFeedbackCreate(BaseModel):
    """Cancellation feedback creation schema."""

    account_id: str = Field(..., description="Account that gave the feedback")
    reason: str = Field(..., description="Selected cancellation reason")
    comments: Optional[str] = Field(None, description="Free-text comments")
    client_timestamp: Optional[datetime] = Field(None, description="Client-side submission time")


class CancellationFeedback(CancellationFeedbackCreate):
    """Cancellation feedback schema."""

    model_config = {"from_attributes": True}

    id: UUID
    created_at: datetime
