"""Product model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base, SoftDeleteMixin, TimestampMixin, UTCDateTime


class Product(Base, TimestampMixin, SoftDeleteMixin):
    """Catalog entry with its stored stock balance.

    ``stock_available`` is the pre-reservation balance kept current by ledger
    writes and audit overrides; ``quantity`` only ever grows with entries.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    brand: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stock_available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    min_stock: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_stock: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    expiration_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    lot_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notification_settings: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    last_audit_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_audit_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
