"""Stock schemas: movements, direct stock operations and reservations."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from stockledger.models.stock import MovementType


class MovementRecord(BaseModel):
    """Immutable ledger entry."""

    id: int
    user_id: str
    product_id: int
    type: MovementType
    amount: int
    reason: str
    user_name: str = ""
    reference_id: Optional[str] = None
    location: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MovementCreate(BaseModel):
    """Raw ledger write; the amount's sign is normalized by type."""

    product_id: int
    type: MovementType
    amount: int
    reason: str = Field(..., min_length=1, max_length=500)
    reference_id: Optional[str] = None
    location: Optional[str] = None


class StockOperationRequest(BaseModel):
    """Entry, exit, adjustment or loss of a product's stock."""

    product_id: int
    quantity: int
    reason: str = Field(..., min_length=1, max_length=500)
    reference_id: Optional[str] = None


class TransferRequest(BaseModel):
    """Move stock between two locations."""

    product_id: int
    quantity: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=400)
    from_location: str = Field(..., min_length=1, max_length=100)
    to_location: str = Field(..., min_length=1, max_length=100)


class ReservationRecord(BaseModel):
    """Stored reservation."""

    id: int
    user_id: str
    product_id: int
    quantity: int
    order_id: str
    reason: str = ""
    customer_name: Optional[str] = None
    expires_at: Optional[datetime] = None
    user_name: str = ""
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    def is_live(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now


class ReservationCreate(BaseModel):
    """Reservation request."""

    product_id: int
    quantity: int
    order_id: str = Field(..., min_length=1, max_length=100)
    reason: str = Field("", max_length=500)
    customer_name: Optional[str] = None
    expires_at: Optional[datetime] = None
