"""Account schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AccountBase(BaseModel):
    """Account base schema."""

    account_id: str = Field(..., description="Opaque account identifier")
    email: str = Field(..., description="Billing contact email")


class AccountCreate(AccountBase):
    """Account creation schema."""

    pass


class AccountUpdate(BaseModel):
    """Account update schema."""

    email: Optional[str] = None
    stripe_customer_id: Optional[str] = None


class Account(AccountBase):
    """Account schema."""

    model_config = {"from_attributes": True}

    id: UUID
    stripe_customer_id: Optional[str] = None
    created_at: datetime
    modified_at: datetime
