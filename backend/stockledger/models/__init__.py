"""SQLAlchemy models."""

from stockledger.models.product import Product
from stockledger.models.stock import MovementType, ProductReservation, StockMovement
from stockledger.models.sale import PaymentMethod, Sale, SaleItem, SaleStatus
from stockledger.models.audit import AuditStatus, InventoryAudit
from stockledger.models.alert import AlertAcknowledgement, AlertType

__all__ = [
    "Product",
    "MovementType",
    "StockMovement",
    "ProductReservation",
    "PaymentMethod",
    "Sale",
    "SaleItem",
    "SaleStatus",
    "AuditStatus",
    "InventoryAudit",
    "AlertAcknowledgement",
    "AlertType",
]
