"""Storage consumption per subscription owner."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base


class StorageUsage(Base):
    """Aggregated storage in megabytes for a team or personal workspace."""

    __tablename__ = "storage_usage"

    owner_type: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    used_storage_mb: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
