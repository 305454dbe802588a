"""Pydantic schemas for subscriptions"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionRead(BaseModel):
    id: int
    owner_id: int
    owner_type: str
    plan_id: int
    status: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    next_payment_date: Optional[datetime] = None
    billing_key_member_id: Optional[int] = None
    retry_count: int = 0
    plan_name: Optional[str] = None
    plan_price: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, subscription) -> "SubscriptionRead":
        # plan is eagerly loaded by every ledger read query
        plan = subscription.__dict__.get("plan")
        data = cls.model_validate(subscription, from_attributes=True).model_dump(
            exclude={"plan_name", "plan_price"}
        )
        return cls(
            **data,
            plan_name=plan.name if plan is not None else None,
            plan_price=plan.price if plan is not None else None,
        )


class SubscriptionStatusUpdate(BaseModel):
    subscription_id: int = Field(..., gt=0)
    status: Literal["CANCELED", "EXPIRED"]
