"""Inventory audit model: one physical-count reconciliation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base, TimestampMixin, UTCDateTime


class AuditStatus(str, Enum):
    """Reconciliation state of an audit."""

    PENDING = "pending"  # Count differed from the expected balance
    COMPLETED = "completed"  # Count matched
    DISCREPANCY_RESOLVED = "discrepancy_resolved"


class InventoryAudit(Base, TimestampMixin):
    """Expected vs. actual physical count for a product."""

    __tablename__ = "inventory_audits"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    expected_count: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_count: Mapped[int] = mapped_column(Integer, nullable=False)
    difference: Mapped[int] = mapped_column(Integer, nullable=False)
    audit_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default=AuditStatus.COMPLETED.value)
    movement_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
