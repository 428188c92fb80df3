"""Stock models: StockMovement and ProductReservation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base, TimestampMixin, UTCDateTime


class MovementType(str, Enum):
    """Kinds of stock movement."""

    ENTRADA = "ENTRADA"  # Goods received
    SALIDA = "SALIDA"  # Goods leaving (sale, dispatch)
    AJUSTE = "AJUSTE"  # Manual or audit correction
    MERMA = "MERMA"  # Spoilage, breakage, theft
    TRANSFERENCIA = "TRANSFERENCIA"  # One leg of a location transfer


class StockMovement(Base, TimestampMixin):
    """Ledger of all stock changes (single source of truth)."""

    __tablename__ = "stock_movements"
    __table_args__ = (
        Index("ix_stock_movements_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    reference_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


class ProductReservation(Base, TimestampMixin):
    """Temporary hold against a product's stock for an open order."""

    __tablename__ = "product_reservations"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    order_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True, index=True)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
