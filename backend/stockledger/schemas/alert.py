"""Alert schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from stockledger.models.alert import AlertType


class StockAlert(BaseModel):
    """Derived alert for one ``{product_id, type}`` identity."""

    id: str
    product_id: int
    product_name: str
    type: AlertType
    current_stock: int
    threshold: int
    message: str
    acknowledged: bool = False
    created_at: datetime
    updated_at: datetime


class AcknowledgementRecord(BaseModel):
    """Stored acknowledgement."""

    id: int
    user_id: str
    product_id: int
    alert_type: AlertType
    acknowledged_at: datetime
    acknowledged_by: str = ""

    model_config = {"from_attributes": True}
