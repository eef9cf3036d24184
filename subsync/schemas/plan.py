"""Plan catalog schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class PlanBase(BaseModel):
    """Plan base schema."""

    plan_id: str = Field(..., description="Internal plan identifier")
    name: str = Field(..., description="Display name of the plan")
    is_active: bool = Field(True, description="Whether new checkouts may target this plan")


class PlanCreate(PlanBase):
    """Plan creation schema."""

    pass


class Plan(PlanBase):
    """Plan schema."""

    model_config = {"from_attributes": True}

    id: UUID
    created_at: datetime
    modified_at: datetime


class PlanPriceCreate(BaseModel):
    """Plan price creation schema."""

    stripe_price_id: str = Field(..., description="Processor price id")
    plan_id: str = Field(..., description="Plan the price belongs to")

