# Services module

from stockledger.services.stock_ledger_service import StockLedgerService, normalize_amount
from stockledger.services.reservation_service import ReservationService
from stockledger.services.availability_service import AvailabilityService, project_stock
from stockledger.services.product_service import ProductService
from stockledger.services.stock_alert_service import StockAlertService, evaluate_alerts
from stockledger.services.sale_service import (
    SaleService,
    calculate_line_total,
    calculate_sale_totals,
    summarize_sales,
)
from stockledger.services.inventory_audit_service import InventoryAuditService

# Read-only analytics over tenant snapshots
from stockledger.services.demand_forecasting_service import DemandForecastingService
from stockledger.services.inventory_optimization_service import (
    InventoryOptimizationService,
    OptimizationConfig,
    generate_optimization_report,
)
from stockledger.services.recommendation_service import RecommendationService
from stockledger.services.smart_notification_service import SmartNotificationService

__all__ = [
    "StockLedgerService",
    "normalize_amount",
    "ReservationService",
    "AvailabilityService",
    "project_stock",
    "ProductService",
    "StockAlertService",
    "evaluate_alerts",
    "SaleService",
    "calculate_line_total",
    "calculate_sale_totals",
    "summarize_sales",
    "InventoryAuditService",
    "DemandForecastingService",
    "InventoryOptimizationService",
    "OptimizationConfig",
    "generate_optimization_report",
    "RecommendationService",
    "SmartNotificationService",
]
