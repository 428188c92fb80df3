"""
Inventory Optimization Service
Safety stock, reorder points and stock-level recommendations

Features:
- Demand analysis per product (daily demand, volatility, trend, seasonality)
- Safety stock / optimal stock / reorder point calculation
- INCREASE / DECREASE / MAINTAIN recommendations with cost-benefit estimate
- Inventory alerts: low stock, overstock, dead stock
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
import logging
import math
import statistics

from stockledger.core.config import settings
from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.repositories.interfaces import Store
from stockledger.schemas.product import ProductWithStock
from stockledger.schemas.sale import SaleItemRecord, SaleRecord
from stockledger.services.availability_service import AvailabilityService
from stockledger.services.demand_forecasting_service import (
    HISTORY_LIMIT,
    demand_history,
    product_lines,
    unique_sales_days,
)

logger = logging.getLogger(__name__)

NO_SALES_DAYS = 999
PRIORITY_RANK = {"CRITICAL": 4, "HIGH": 3, "MEDIUM": 2, "LOW": 1}


class OptimizationConfig:
    """Tunables for the optimization run"""
    def __init__(
        self,
        lead_time_days: int = 7,
        coverage_days: int = 30,
        overstock_days: int = 60,
        dead_stock_days: int = 90,
        unit_cost_ratio: float = 0.3,
    ):
        self.lead_time_days = lead_time_days
        self.coverage_days = coverage_days
        self.overstock_days = overstock_days
        self.dead_stock_days = dead_stock_days
        self.unit_cost_ratio = unit_cost_ratio

    @classmethod
    def from_settings(cls) -> "OptimizationConfig":
        return cls(
            lead_time_days=settings.default_lead_time_days,
            overstock_days=settings.overstock_days,
            dead_stock_days=settings.dead_stock_days,
        )


class DemandAnalysis:
    def __init__(
        self,
        average_daily_demand: float = 0.0,
        demand_volatility: float = 0.0,
        seasonal_pattern: str = "NONE",
        trend: str = "STABLE",
        lead_time: int = 7,
    ):
        self.average_daily_demand = average_daily_demand
        self.demand_volatility = demand_volatility
        self.seasonal_pattern = seasonal_pattern
        self.trend = trend
        self.lead_time = lead_time

    def to_dict(self) -> Dict:
        return {
            "average_daily_demand": round(self.average_daily_demand, 2),
            "demand_volatility": round(self.demand_volatility, 3),
            "seasonal_pattern": self.seasonal_pattern,
            "trend": self.trend,
            "lead_time": self.lead_time,
        }


class StockAnalysis:
    def __init__(
        self,
        needs_optimization: bool,
        safety_stock: int,
        recommended_stock: int,
        stockout_risk: float,
        overstock_risk: float,
        optimal_reorder_point: int,
    ):
        self.needs_optimization = needs_optimization
        self.safety_stock = safety_stock
        self.recommended_stock = recommended_stock
        self.stockout_risk = stockout_risk
        self.overstock_risk = overstock_risk
        self.optimal_reorder_point = optimal_reorder_point

    def to_dict(self) -> Dict:
        return {
            "needs_optimization": self.needs_optimization,
            "safety_stock": self.safety_stock,
            "recommended_stock": self.recommended_stock,
            "stockout_risk": round(self.stockout_risk, 3),
            "overstock_risk": round(self.overstock_risk, 3),
            "optimal_reorder_point": self.optimal_reorder_point,
        }


class OptimizationRecommendation:
    """Stock level recommendation for a product"""
    def __init__(
        self,
        product_id: int,
        product_name: str,
        current_stock: int,
        recommended_stock: int,
        reorder_point: int,
        action: str,
        priority: str,
        reason: str,
        expected_impact: int,
        cost: float,
        benefit: float,
        roi: float,
        confidence: float,
    ):
        self.product_id = product_id
        self.product_name = product_name
        self.current_stock = current_stock
        self.recommended_stock = recommended_stock
        self.reorder_point = reorder_point
        self.action = action
        self.priority = priority
        self.reason = reason
        self.expected_impact = expected_impact
        self.cost = cost
        self.benefit = benefit
        self.roi = roi
        self.confidence = confidence

    def to_dict(self) -> Dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "current_stock": self.current_stock,
            "recommended_stock": self.recommended_stock,
            "reorder_point": self.reorder_point,
            "action": self.action,
            "priority": self.priority,
            "reason": self.reason,
            "expected_impact": self.expected_impact,
            "cost_benefit": {
                "cost": round(self.cost, 2),
                "benefit": round(self.benefit, 2),
                "roi": round(self.roi, 2),
            },
            "confidence": round(self.confidence, 2),
        }


class InventoryAlert:
    def __init__(
        self,
        type: str,
        product_id: int,
        product_name: str,
        severity: str,
        message: str,
        recommended_action: str,
        estimated_loss: float,
        timestamp: datetime,
    ):
        self.type = type
        self.product_id = product_id
        self.product_name = product_name
        self.severity = severity
        self.message = message
        self.recommended_action = recommended_action
        self.estimated_loss = estimated_loss
        self.timestamp = timestamp

    @property
    def id(self) -> str:
        return f"{self.type.lower().replace('_', '-')}-{self.product_id}"

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "type": self.type,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "severity": self.severity,
            "message": self.message,
            "recommended_action": self.recommended_action,
            "estimated_loss": round(self.estimated_loss, 2),
            "timestamp": self.timestamp.isoformat(),
        }


class OptimizationReport:
    def __init__(
        self,
        recommendations: List[OptimizationRecommendation],
        alerts: List[InventoryAlert],
    ):
        self.recommendations = recommendations
        self.alerts = alerts

    @property
    def critical_alerts(self) -> int:
        return sum(1 for a in self.alerts if a.severity == "CRITICAL")

    @property
    def potential_savings(self) -> float:
        return sum(r.benefit for r in self.recommendations)

    @property
    def potential_revenue(self) -> float:
        return float(sum(r.expected_impact for r in self.recommendations))

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "overstocked_items": sum(1 for r in self.recommendations if r.action == "DECREASE"),
            "understocked_items": sum(1 for r in self.recommendations if r.action == "INCREASE"),
            "dead_stock_items": sum(1 for a in self.alerts if a.type == "DEAD_STOCK"),
            "seasonal_adjustments": sum(1 for a in self.alerts if a.type == "SEASONAL_ADJUSTMENT"),
        }

    def to_dict(self) -> Dict:
        return {
            "total_recommendations": len(self.recommendations),
            "critical_alerts": self.critical_alerts,
            "potential_savings": round(self.potential_savings, 2),
            "potential_revenue": round(self.potential_revenue, 2),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "alerts": [a.to_dict() for a in self.alerts],
            "summary": self.summary,
        }


# ===== ANALYSIS =====

def detect_seasonal_pattern(lines: List[Tuple[SaleRecord, SaleItemRecord]]) -> str:
    if len(lines) < 12:
        return "NONE"
    monthly: Dict[int, int] = {}
    for sale, item in lines:
        month = sale.created_at.month
        monthly[month] = monthly.get(month, 0) + item.quantity
    if max(monthly.values()) > min(monthly.values()) * 2:
        return "SEASONAL"
    return "STABLE"


def analyze_demand(
    product: ProductWithStock,
    sales: List[SaleRecord],
    config: Optional[OptimizationConfig] = None,
) -> DemandAnalysis:
    """Demand statistics from the product's sale lines, oldest first."""
    config = config or OptimizationConfig()
    lines = product_lines(sales, product.id)
    if not lines:
        return DemandAnalysis(lead_time=config.lead_time_days)

    quantities = [item.quantity for _, item in lines]
    average_daily = sum(quantities) / max(unique_sales_days(sales, product.id), 1)

    mean = statistics.fmean(quantities)
    volatility = statistics.pstdev(quantities) / mean if mean > 0 else 0.0

    recent = quantities[-10:]
    older = quantities[-20:-10]
    trend = "STABLE"
    if older:
        recent_avg = statistics.fmean(recent)
        older_avg = statistics.fmean(older)
        if recent_avg > older_avg * 1.1:
            trend = "INCREASING"
        elif recent_avg < older_avg * 0.9:
            trend = "DECREASING"

    return DemandAnalysis(
        average_daily_demand=average_daily,
        demand_volatility=volatility,
        seasonal_pattern=detect_seasonal_pattern(lines),
        trend=trend,
        lead_time=config.lead_time_days,
    )


def analyze_stock_levels(
    product: ProductWithStock,
    demand: DemandAnalysis,
    config: Optional[OptimizationConfig] = None,
) -> StockAnalysis:
    config = config or OptimizationConfig()
    stock = product.stock_available
    daily = demand.average_daily_demand

    safety_stock = math.ceil(daily * demand.lead_time * (1 + demand.demand_volatility))
    optimal_stock = math.ceil(daily * (demand.lead_time + config.coverage_days))
    recommended = max(safety_stock, optimal_stock)

    stockout_risk = 0.0
    if stock < safety_stock:
        stockout_risk = min(1.0, (safety_stock - stock) / safety_stock)

    overstock_risk = 0.0
    if stock > recommended * 1.5:
        # With no recommended level any stock on hand is excess
        overstock_risk = min(1.0, (stock - recommended * 1.5) / recommended) if recommended else 1.0

    reorder_point = math.ceil(daily * demand.lead_time + safety_stock)
    needs_optimization = (
        stockout_risk > 0.3
        or overstock_risk > 0.3
        or abs(stock - recommended) > recommended * 0.2
    )
    return StockAnalysis(
        needs_optimization=needs_optimization,
        safety_stock=safety_stock,
        recommended_stock=recommended,
        stockout_risk=stockout_risk,
        overstock_risk=overstock_risk,
        optimal_reorder_point=reorder_point,
    )


def determine_action(product: ProductWithStock, analysis: StockAnalysis) -> str:
    stock = product.stock_available
    recommended = analysis.recommended_stock
    if analysis.stockout_risk > 0.5:
        return "INCREASE"
    if analysis.overstock_risk > 0.5:
        return "DECREASE"
    if abs(stock - recommended) > recommended * 0.2:
        return "INCREASE" if stock < recommended else "DECREASE"
    return "MAINTAIN"


def calculate_priority(analysis: StockAnalysis) -> str:
    max_risk = max(analysis.stockout_risk, analysis.overstock_risk)
    if max_risk > 0.8:
        return "CRITICAL"
    if max_risk > 0.6:
        return "HIGH"
    if max_risk > 0.4:
        return "MEDIUM"
    return "LOW"


def generate_reason(product: ProductWithStock, analysis: StockAnalysis, demand: DemandAnalysis) -> str:
    if analysis.stockout_risk > 0.5:
        return (
            f"Alto riesgo de agotamiento ({round(analysis.stockout_risk * 100)}%). "
            f"Demanda promedio: {demand.average_daily_demand:.1f} unidades/día"
        )
    if analysis.overstock_risk > 0.5:
        return (
            f"Exceso de inventario ({round(analysis.overstock_risk * 100)}%). "
            f"Stock actual: {product.stock_available}, recomendado: {analysis.recommended_stock}"
        )
    if demand.trend == "INCREASING":
        return "Demanda en aumento. Ajustar stock para evitar desabastecimiento"
    if demand.trend == "DECREASING":
        return "Demanda en disminución. Reducir stock para evitar obsolescencia"
    return "Optimización de niveles de stock para mejorar eficiencia"


def calculate_expected_impact(action: str, analysis: StockAnalysis) -> int:
    if action == "INCREASE":
        return round(analysis.stockout_risk * 100)
    if action == "DECREASE":
        return round(analysis.overstock_risk * 80)
    return 50


def calculate_cost_benefit(
    product: ProductWithStock,
    action: str,
    analysis: StockAnalysis,
    config: Optional[OptimizationConfig] = None,
) -> Tuple[float, float, float]:
    """Returns ``(cost, benefit, roi_percent)``."""
    config = config or OptimizationConfig()
    price = float(product.unit_price)
    difference = abs(analysis.recommended_stock - product.stock_available)
    unit_cost = price * config.unit_cost_ratio

    cost = benefit = 0.0
    if action == "INCREASE":
        cost = difference * unit_cost
        benefit = difference * price * 0.1
    elif action == "DECREASE":
        benefit = difference * unit_cost * 0.8

    roi = (benefit - cost) / cost * 100 if cost > 0 else 0.0
    return cost, benefit, roi


def calculate_confidence(product: ProductWithStock, sales: List[SaleRecord]) -> float:
    confidence = min(0.9, len(product_lines(sales, product.id)) / 20)
    if unique_sales_days(sales, product.id) > 30:
        confidence += 0.1
    return min(0.95, confidence)


def days_since_last_sale(product_id: int, sales: List[SaleRecord], now: datetime) -> int:
    dates = [s.created_at for s in sales if any(i.product_id == product_id for i in s.items)]
    if not dates:
        return NO_SALES_DAYS
    return int((now - max(dates)).total_seconds() // 86400)


def analyze_product(
    product: ProductWithStock,
    sales: List[SaleRecord],
    config: Optional[OptimizationConfig] = None,
) -> Optional[OptimizationRecommendation]:
    """Recommendation for one product, or None when its stock level is fine."""
    config = config or OptimizationConfig()
    demand = analyze_demand(product, sales, config)
    analysis = analyze_stock_levels(product, demand, config)
    if not analysis.needs_optimization:
        return None

    action = determine_action(product, analysis)
    cost, benefit, roi = calculate_cost_benefit(product, action, analysis, config)
    return OptimizationRecommendation(
        product_id=product.id,
        product_name=product.name,
        current_stock=product.stock_available,
        recommended_stock=analysis.recommended_stock,
        reorder_point=analysis.optimal_reorder_point,
        action=action,
        priority=calculate_priority(analysis),
        reason=generate_reason(product, analysis, demand),
        expected_impact=calculate_expected_impact(action, analysis),
        cost=cost,
        benefit=benefit,
        roi=roi,
        confidence=calculate_confidence(product, sales),
    )


def generate_product_alerts(
    product: ProductWithStock,
    sales: List[SaleRecord],
    now: datetime,
    config: Optional[OptimizationConfig] = None,
) -> List[InventoryAlert]:
    config = config or OptimizationConfig()
    stock = product.stock_available
    price = float(product.unit_price)
    alerts = []

    if stock <= (product.min_stock or 0):
        alerts.append(InventoryAlert(
            type="LOW_STOCK",
            product_id=product.id,
            product_name=product.name,
            severity="CRITICAL",
            message=f"Stock crítico: {stock} unidades restantes",
            recommended_action="Reabastecer inmediatamente",
            estimated_loss=price * 10,
            timestamp=now,
        ))

    demand = analyze_demand(product, sales, config)
    optimal_stock = math.ceil(demand.average_daily_demand * config.overstock_days)
    # Products that never sold are covered by the dead-stock rule
    if demand.average_daily_demand > 0 and stock > optimal_stock * 2:
        alerts.append(InventoryAlert(
            type="OVERSTOCK",
            product_id=product.id,
            product_name=product.name,
            severity="HIGH",
            message=f"Exceso de inventario: {stock} unidades (óptimo: {optimal_stock})",
            recommended_action="Reducir stock o aplicar descuentos",
            estimated_loss=(stock - optimal_stock) * price * 0.1,
            timestamp=now,
        ))

    idle_days = days_since_last_sale(product.id, sales, now)
    if idle_days > config.dead_stock_days and stock > 0:
        alerts.append(InventoryAlert(
            type="DEAD_STOCK",
            product_id=product.id,
            product_name=product.name,
            severity="MEDIUM",
            message=f"Stock inactivo: {idle_days} días sin ventas",
            recommended_action="Liquidar o donar stock",
            estimated_loss=stock * price * 0.5,
            timestamp=now,
        ))

    return alerts


def generate_optimization_report(
    products: List[ProductWithStock],
    sales: List[SaleRecord],
    now: datetime,
    config: Optional[OptimizationConfig] = None,
) -> OptimizationReport:
    config = config or OptimizationConfig()
    history = demand_history(sales)

    recommendations = []
    alerts = []
    for product in products:
        recommendation = analyze_product(product, history, config)
        if recommendation:
            recommendations.append(recommendation)
        alerts.extend(generate_product_alerts(product, history, now, config))

    recommendations.sort(key=lambda r: PRIORITY_RANK[r.priority], reverse=True)
    alerts.sort(key=lambda a: PRIORITY_RANK[a.severity], reverse=True)
    return OptimizationReport(recommendations, alerts)


class InventoryOptimizationService:
    """Builds optimization reports from a tenant snapshot."""

    def __init__(
        self,
        store: Store,
        clock: Callable[[], datetime] = utcnow,
        config: Optional[OptimizationConfig] = None,
    ):
        self.store = store
        self.clock = clock
        self.config = config or OptimizationConfig.from_settings()
        self.availability = AvailabilityService(store, clock)

    def generate_report(self, actor: Optional[Actor]) -> OptimizationReport:
        actor = require_actor(actor)
        products = self.availability.list_products_with_stock_info(actor)
        sales = self.store.sales.list(actor.user_id, limit=HISTORY_LIMIT)
        report = generate_optimization_report(products, sales, self.clock(), self.config)
        logger.info(
            "Optimization report: %s recommendations, %s alerts (%s critical)",
            len(report.recommendations), len(report.alerts), report.critical_alerts,
        )
        return report
