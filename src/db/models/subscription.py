"""Subscription model linking an owner (member or team) to a plan."""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"


class OwnerType(str, enum.Enum):
    TEAM = "team"
    PERSONAL = "personal"


class Subscription(Base):
    """One row per plan period; at most one ACTIVE row per owner."""

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_type: Mapped[str] = mapped_column(String, nullable=False)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    plan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("plans.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=SubscriptionStatus.ACTIVE.value
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_payment_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    billing_key_member_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    plan: Mapped["Plan"] = relationship("Plan")

    __table_args__ = (
        Index("ix_subscriptions_owner_status", "owner_type", "owner_id", "status"),
        Index("ix_subscriptions_due", "status", "next_payment_date"),
        Index(
            "uq_subscriptions_one_active",
            "owner_type",
            "owner_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return (
            f"<Subscription {self.id} {self.owner_type}:{self.owner_id} "
            f"plan={self.plan_id} status={self.status}>"
        )
