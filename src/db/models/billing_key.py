"""Stored card references (NicePay billing keys)."""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base


class BillingKeyStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    REMOVED = "REMOVED"


class BillingKey(Base):
    """A gateway-issued token for a member's registered card."""

    __tablename__ = "billing_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    bid: Mapped[str] = mapped_column(String, nullable=False)
    card_code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    card_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    card_no_masked: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=BillingKeyStatus.ACTIVE.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    removed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index(
            "uq_billing_keys_one_active",
            "member_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == BillingKeyStatus.ACTIVE.value

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<BillingKey {self.id} member={self.member_id} status={self.status}>"
