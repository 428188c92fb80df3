"""Product schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class ProductNotificationSettings(BaseModel):
    """Per-product notification overrides; unset fields fall back to defaults."""

    low_stock_threshold: Optional[int] = Field(None, ge=0)
    inactivity_days: Optional[int] = Field(None, ge=1)
    expiration_warning_days: Optional[int] = Field(None, ge=0)
    enable_low_stock_alerts: Optional[bool] = None
    enable_expiration_alerts: Optional[bool] = None
    enable_inactivity_alerts: Optional[bool] = None
    enable_audit_alerts: Optional[bool] = None


class ProductRecord(BaseModel):
    """Stored product as returned by the store."""

    id: int
    user_id: str
    name: str
    brand: str = ""
    unit_price: Decimal = Decimal("0")
    quantity: int = 0
    stock_available: int = 0
    reserved_stock: int = 0
    min_stock: Optional[int] = None
    max_stock: Optional[int] = None
    expiration_date: Optional[datetime] = None
    lot_number: Optional[str] = None
    notification_settings: Optional[ProductNotificationSettings] = None
    last_audit_date: Optional[datetime] = None
    last_audit_count: Optional[int] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProductWithStock(ProductRecord):
    """Product with derived availability.

    ``stock_available`` here is the sellable quantity (stored balance minus
    live reservations, floored at zero); ``stored_stock`` keeps the raw balance.
    """

    stored_stock: int = 0


class ProductCreate(BaseModel):
    """Catalog entry request.

    The opening balance is ``stock_available`` when given, else ``quantity``;
    it is booked through the ledger as an initial entry.
    """

    name: str = Field(..., min_length=1, max_length=200)
    brand: str = Field("", max_length=200)
    unit_price: Decimal = Field(Decimal("0"), ge=0)
    quantity: int = Field(0, ge=0)
    stock_available: Optional[int] = Field(None, ge=0)
    min_stock: Optional[int] = Field(None, ge=0)
    max_stock: Optional[int] = Field(None, ge=0)
    expiration_date: Optional[datetime] = None
    lot_number: Optional[str] = None
    notification_settings: Optional[ProductNotificationSettings] = None


class ProductUpdate(BaseModel):
    """Catalog attribute changes. Stock numbers only move through the ledger."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    brand: Optional[str] = Field(None, max_length=200)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    min_stock: Optional[int] = Field(None, ge=0)
    max_stock: Optional[int] = Field(None, ge=0)
    expiration_date: Optional[datetime] = None
    lot_number: Optional[str] = None
    notification_settings: Optional[ProductNotificationSettings] = None
