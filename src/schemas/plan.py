"""Pydantic schemas for Plan resources"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PlanBase(BaseModel):
    name: str = Field(..., min_length=1, description="Plan name")
    price: int = Field(..., ge=0, description="Monthly price in KRW")
    max_members: int = Field(..., ge=1, description="Maximum team members")
    max_storage_mb: float = Field(..., gt=0, description="Storage quota in MB")
    external_plan_id: Optional[str] = Field(
        default=None, description="Plan identifier at an external billing provider"
    )
    external_product_id: Optional[str] = Field(
        default=None, description="Product identifier at an external billing provider"
    )


class PlanCreate(PlanBase):
    """Schema for creating a plan."""


class PlanUpdate(BaseModel):
    """Partial plan update; omitted fields are left unchanged."""

    name: Optional[str] = Field(default=None, min_length=1)
    price: Optional[int] = Field(default=None, ge=0)
    max_members: Optional[int] = Field(default=None, ge=1)
    max_storage_mb: Optional[float] = Field(default=None, gt=0)
    external_plan_id: Optional[str] = None
    external_product_id: Optional[str] = None

    @field_validator("name", "price", "max_members", "max_storage_mb")
    @classmethod
    def not_null(cls, value):
        # Omitted is fine; an explicit null would clear a NOT NULL column.
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class PlanRead(PlanBase):
    """Schema returned when reading a plan."""

    id: int = Field(..., description="Plan identifier")
    created_at: Optional[datetime] = Field(default=None, description="Creation timestamp")

    model_config = ConfigDict(from_attributes=True)
