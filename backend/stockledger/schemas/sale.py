"""Sale schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from stockledger.models.sale import PaymentMethod, SaleStatus


def format_sale_number(sale_id: int) -> str:
    """Receipt number for a sale id, e.g. ``V-00000042``."""
    return f"V-{sale_id:08d}"


class SaleItemRecord(BaseModel):
    """Stored sale line."""

    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    discount: Decimal = Decimal("0")
    total: Decimal

    model_config = {"from_attributes": True}


class SaleRecord(BaseModel):
    """Stored sale header with its lines."""

    id: int
    user_id: str
    user_name: str = ""
    customer_id: str
    customer_name: str = ""
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    items: List[SaleItemRecord]
    subtotal: Decimal
    tax: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    total: Decimal
    payment_method: PaymentMethod
    status: SaleStatus
    notes: Optional[str] = None
    stock_applied: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def sale_number(self) -> str:
        """Human-facing number shown on receipts."""
        return format_sale_number(self.id)


class SaleItemCreate(BaseModel):
    """Sale line request. ``product_name`` defaults to the catalog name."""

    product_id: int
    quantity: int
    unit_price: Decimal
    discount: Decimal = Decimal("0")
    product_name: Optional[str] = None


class SaleCreate(BaseModel):
    """Sale request; totals are computed server-side."""

    customer_id: Optional[str] = None
    customer_name: str = Field("", max_length=200)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    items: List[SaleItemCreate]
    tax: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    payment_method: PaymentMethod = PaymentMethod.EFECTIVO
    notes: Optional[str] = None


class SaleStatusUpdate(BaseModel):
    """Status change request."""

    status: SaleStatus
    notes: Optional[str] = None


class TopProduct(BaseModel):
    product_id: int
    product_name: str
    quantity_sold: int
    revenue: Decimal
    percentage: float


class SalesAnalytics(BaseModel):
    """Aggregates over a set of sales."""

    total_sales: int
    total_revenue: Decimal
    average_order_value: Decimal
    total_customers: int
    top_products: List[TopProduct]
    sales_by_day: Dict[str, Decimal]
    sales_by_status: Dict[str, int]
