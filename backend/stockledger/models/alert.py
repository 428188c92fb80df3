"""Alert acknowledgement model.

Alerts themselves are derived on every read; only the acknowledgement of an
alert identity ``{product_id, alert_type}`` is stored.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base, UTCDateTime


class AlertType(str, Enum):
    """Stock alert kinds."""

    MIN_STOCK = "MIN_STOCK"
    MAX_STOCK = "MAX_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


class AlertAcknowledgement(Base):
    """Sticky acknowledgement of one alert identity."""

    __tablename__ = "alert_acknowledgements"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "alert_type", name="uq_alert_ack_identity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    alert_type: Mapped[str] = mapped_column(String(20), nullable=False)
    acknowledged_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    acknowledged_by: Mapped[str] = mapped_column(String(200), nullable=False, default="")
