"""Plan catalog models."""

from typing import List

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from subsync.models._base import Base


class Plan(Base):
    """An internal plan that one or more processor prices map to."""

    __tablename__ = "plan"

    plan_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    prices: Mapped[List["PlanPrice"]] = relationship(
        "PlanPrice", back_populates="plan", lazy="noload"
    )


class PlanPrice(Base):
    """A processor price id. Belongs to at most one plan."""

    __tablename__ = "plan_price"

    stripe_price_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    plan_id: Mapped[str] = mapped_column(
        ForeignKey("plan.plan_id", ondelete="CASCADE"), nullable=False
    )

    plan: Mapped["Plan"] = relationship("Plan", back_populates="prices", lazy="noload")
