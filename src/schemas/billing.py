"""Pydantic schemas for billing keys and checkout"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


OwnerTypeLiteral = Literal["team", "personal"]


class RegisterBillingRequest(BaseModel):
    """Card details plus the plan and owner being subscribed."""

    card_no: str = Field(..., min_length=12, max_length=19, pattern=r"^\d+$")
    exp_year: str = Field(..., pattern=r"^\d{2}$", description="YY")
    exp_month: str = Field(..., pattern=r"^(0[1-9]|1[0-2])$", description="MM")
    id_no: str = Field(
        ..., pattern=r"^\d{6}(\d{4})?$", description="Birth date (YYMMDD) or business number"
    )
    card_pw: str = Field(..., pattern=r"^\d{2}$", description="First two digits of the card PIN")
    plan_id: int = Field(..., gt=0)
    owner_id: int = Field(..., gt=0)
    owner_type: OwnerTypeLiteral


class BillingKeyRead(BaseModel):
    """Masked card information; the gateway token itself is never returned."""

    id: int
    card_code: Optional[str] = None
    card_name: Optional[str] = None
    card_no_masked: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CheckoutResponse(BaseModel):
    success: bool = True
    message: str
    tid: str
    subscription_id: int
    next_payment_date: Optional[datetime] = None
