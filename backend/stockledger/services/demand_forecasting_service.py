"""
Demand Forecasting Service
Statistical demand and sales forecasts over sales history

Features:
- Next-days sales forecast (7-day moving average with trend)
- Per-product demand prediction with risk level and recommended stock
- Seasonal pattern detection
- Price suggestion from a fixed elasticity

All forecasts are pure functions of a snapshot (products, sales, now). They
never raise on thin history: below the minimum sample they return empty or
zero-confidence results.
"""

from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
import logging
import math
import statistics

from stockledger.core.config import settings
from stockledger.core.errors import NotFound, ValidationError
from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.models.sale import SaleStatus
from stockledger.repositories.interfaces import Store
from stockledger.schemas.product import ProductWithStock
from stockledger.schemas.sale import SaleItemRecord, SaleRecord
from stockledger.services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

MIN_DAYS_FOR_SALES_FORECAST = 7
MIN_POINTS_FOR_SEASONALITY = 4
MIN_POINTS_FOR_PRICING = 5
PRICE_ELASTICITY = -0.5
PRICE_CHANGE = 0.1
HISTORY_LIMIT = 1000

SEASONS = ("SPRING", "SUMMER", "FALL", "WINTER")


class SalesForecast:
    """Forecast for a single day"""
    def __init__(
        self,
        period: date,
        predicted_sales: float,
        confidence: float,
        factors: List[str],
        trend: str,
    ):
        self.period = period
        self.predicted_sales = predicted_sales
        self.confidence = confidence
        self.factors = factors
        self.trend = trend

    def to_dict(self) -> Dict:
        return {
            "period": self.period.isoformat(),
            "predicted_sales": round(self.predicted_sales, 2),
            "confidence": round(self.confidence, 2),
            "factors": self.factors,
            "trend": self.trend,
        }


class DemandPrediction:
    """Demand forecast for one product"""
    def __init__(
        self,
        product_id: int,
        product_name: str,
        predicted_demand: float,
        confidence: float,
        recommended_stock: int,
        risk_level: str,
        factors: List[str],
    ):
        self.product_id = product_id
        self.product_name = product_name
        self.predicted_demand = predicted_demand
        self.confidence = confidence
        self.recommended_stock = recommended_stock
        self.risk_level = risk_level
        self.factors = factors

    def to_dict(self) -> Dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "predicted_demand": round(self.predicted_demand, 2),
            "confidence": round(self.confidence, 2),
            "recommended_stock": self.recommended_stock,
            "risk_level": self.risk_level,
            "factors": self.factors,
        }


class SeasonalPattern:
    """Units sold per season for one product"""
    def __init__(
        self,
        product_id: int,
        product_name: str,
        pattern: Dict[str, int],
        peak_season: str,
        low_season: str,
        seasonality: float,
    ):
        self.product_id = product_id
        self.product_name = product_name
        self.pattern = pattern
        self.peak_season = peak_season
        self.low_season = low_season
        self.seasonality = seasonality

    def to_dict(self) -> Dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "pattern": dict(self.pattern),
            "peak_season": self.peak_season,
            "low_season": self.low_season,
            "seasonality": round(self.seasonality, 3),
        }


class PricingSuggestion:
    """Price change suggestion"""
    def __init__(
        self,
        current_price: float,
        suggested_price: float,
        expected_demand_change: float,
        expected_revenue_change: float,
        confidence: float,
    ):
        self.current_price = current_price
        self.suggested_price = suggested_price
        self.expected_demand_change = expected_demand_change
        self.expected_revenue_change = expected_revenue_change
        self.confidence = confidence

    def to_dict(self) -> Dict:
        return {
            "current_price": round(self.current_price, 2),
            "suggested_price": round(self.suggested_price, 2),
            "expected_demand_change": round(self.expected_demand_change, 2),
            "expected_revenue_change": round(self.expected_revenue_change, 2),
            "confidence": round(self.confidence, 2),
        }


# ===== SNAPSHOT HELPERS =====

def demand_history(sales: List[SaleRecord]) -> List[SaleRecord]:
    """Sales that represent demand: everything except cancelled sales, oldest first."""
    kept = [s for s in sales if s.status != SaleStatus.CANCELADA]
    return sorted(kept, key=lambda s: (s.created_at, s.id))


def product_lines(sales: List[SaleRecord], product_id: int) -> List[Tuple[SaleRecord, SaleItemRecord]]:
    return [(sale, item) for sale in sales for item in sale.items if item.product_id == product_id]


def unique_sales_days(sales: List[SaleRecord], product_id: int) -> int:
    return len({
        sale.created_at.date()
        for sale in sales
        if any(item.product_id == product_id for item in sale.items)
    })


def group_sales_by_day(sales: List[SaleRecord]) -> "OrderedDict[date, int]":
    """Units sold per calendar day, in date order."""
    daily: Dict[date, int] = {}
    for sale in sales:
        day = sale.created_at.date()
        daily[day] = daily.get(day, 0) + sum(item.quantity for item in sale.items)
    return OrderedDict(sorted(daily.items()))


def calculate_trend(values: List[float]) -> float:
    """Relative change between the first and second half of *values*."""
    if len(values) < 2:
        return 0.0
    half = len(values) // 2
    first_avg = statistics.fmean(values[:half])
    second_avg = statistics.fmean(values[half:])
    if first_avg == 0:
        return 0.0
    return (second_avg - first_avg) / first_avg


def trend_label(trend: float) -> str:
    if trend > 0.1:
        return "INCREASING"
    if trend < -0.1:
        return "DECREASING"
    return "STABLE"


def season_of(moment: datetime) -> str:
    month = moment.month
    if 3 <= month <= 5:
        return "SPRING"
    if 6 <= month <= 8:
        return "SUMMER"
    if 9 <= month <= 11:
        return "FALL"
    return "WINTER"


def calculate_demand_risk(stock: int, predicted_demand: float, confidence: float) -> str:
    stock_ratio = stock / max(predicted_demand, 1)
    if confidence < 0.5 or stock_ratio < 0.5:
        return "HIGH"
    if confidence < 0.7 or stock_ratio < 1:
        return "MEDIUM"
    return "LOW"


SAFETY_BUFFER = {"HIGH": 1.5, "MEDIUM": 1.2, "LOW": 1.1}


# ===== FORECASTS =====

def predict_sales(sales: List[SaleRecord], now: datetime, periods: int = 7) -> List[SalesForecast]:
    """Forecast units sold for each of the next *periods* days."""
    history = demand_history(sales)
    values = [float(v) for v in group_sales_by_day(history).values()]
    if len(values) < MIN_DAYS_FOR_SALES_FORECAST:
        return []

    average = statistics.fmean(values[-7:])
    trend = calculate_trend(values[-14:])
    predicted = max(0.0, average * (1 + trend * 0.1))

    factors = []
    if any(now - s.created_at < timedelta(days=7) for s in history):
        factors.append("Ventas recientes positivas")
    factors.extend(["Patrón estacional", "Tendencias del mercado"])

    return [
        SalesForecast(
            period=now.date() + timedelta(days=i + 1),
            predicted_sales=predicted,
            confidence=max(0.3, 1 - i * 0.1),
            factors=list(factors),
            trend=trend_label(trend),
        )
        for i in range(periods)
    ]


def predict_product_demand(
    product: ProductWithStock, sales: List[SaleRecord], days: int = 30
) -> DemandPrediction:
    """Average daily demand (over days with sales) times *days*."""
    history = demand_history(sales)
    lines = product_lines(history, product.id)
    if not lines:
        return DemandPrediction(
            product_id=product.id,
            product_name=product.name,
            predicted_demand=0.0,
            confidence=0.0,
            recommended_stock=0,
            risk_level="HIGH",
            factors=["Sin datos históricos"],
        )

    total_quantity = sum(item.quantity for _, item in lines)
    average_daily = total_quantity / max(unique_sales_days(history, product.id), 1)
    predicted = average_daily * days
    confidence = min(0.9, max(0.3, len(lines) / 10))
    risk = calculate_demand_risk(product.stock_available, predicted, confidence)

    factors = []
    if len(lines) > 10:
        factors.append("Datos históricos sólidos")
    if product.stock_available < 10:
        factors.append("Stock bajo - alta demanda esperada")
    if product.min_stock and product.stock_available <= product.min_stock:
        factors.append("Alerta de stock mínimo")

    return DemandPrediction(
        product_id=product.id,
        product_name=product.name,
        predicted_demand=predicted,
        confidence=confidence,
        recommended_stock=math.ceil(predicted * SAFETY_BUFFER[risk]),
        risk_level=risk,
        factors=factors,
    )


def analyze_seasonal_patterns(
    products: List[ProductWithStock], sales: List[SaleRecord]
) -> List[SeasonalPattern]:
    """Per-season units for products with enough history, most seasonal first."""
    history = demand_history(sales)
    patterns = []
    for product in products:
        lines = product_lines(history, product.id)
        if len(lines) < MIN_POINTS_FOR_SEASONALITY:
            continue

        pattern = {season: 0 for season in SEASONS}
        for sale, item in lines:
            pattern[season_of(sale.created_at)] += item.quantity

        values = list(pattern.values())
        mean = statistics.fmean(values)
        seasonality = min(1.0, statistics.pstdev(values) / mean) if mean > 0 else 0.0
        patterns.append(SeasonalPattern(
            product_id=product.id,
            product_name=product.name,
            pattern=pattern,
            peak_season=max(SEASONS, key=lambda s: pattern[s]),
            low_season=min(SEASONS, key=lambda s: pattern[s]),
            seasonality=seasonality,
        ))
    return sorted(patterns, key=lambda p: p.seasonality, reverse=True)


def predict_optimal_pricing(product: ProductWithStock, sales: List[SaleRecord]) -> PricingSuggestion:
    """Suggest a 10% price change under a fixed elasticity."""
    lines = product_lines(demand_history(sales), product.id)
    if len(lines) < MIN_POINTS_FOR_PRICING:
        price = float(product.unit_price)
        return PricingSuggestion(price, price, 0.0, 0.0, 0.0)

    avg_quantity = statistics.fmean(item.quantity for _, item in lines)
    avg_price = statistics.fmean(float(item.unit_price) for _, item in lines)

    demand_change = PRICE_ELASTICITY * PRICE_CHANGE
    suggested_price = avg_price * (1 + PRICE_CHANGE)
    expected_revenue = suggested_price * avg_quantity * (1 + demand_change)
    current_revenue = avg_price * avg_quantity
    revenue_change = (expected_revenue - current_revenue) / current_revenue * 100 if current_revenue else 0.0

    return PricingSuggestion(
        current_price=avg_price,
        suggested_price=suggested_price,
        expected_demand_change=demand_change * 100,
        expected_revenue_change=revenue_change,
        confidence=min(0.7, len(lines) / 20),
    )


class DemandForecastingService:
    """Loads a tenant snapshot and runs the forecasts over it."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock
        self.availability = AvailabilityService(store, clock)

    def _snapshot(self, actor: Actor) -> Tuple[List[ProductWithStock], List[SaleRecord]]:
        products = self.availability.list_products_with_stock_info(actor)
        sales = self.store.sales.list(actor.user_id, limit=HISTORY_LIMIT)
        return products, sales

    def _product(self, products: List[ProductWithStock], product_id: int) -> ProductWithStock:
        for product in products:
            if product.id == product_id:
                return product
        raise NotFound("Product", product_id)

    def predict_sales(self, actor: Optional[Actor], periods: int = 7) -> List[SalesForecast]:
        actor = require_actor(actor)
        if periods <= 0:
            raise ValidationError("periods must be positive", field="periods")
        _, sales = self._snapshot(actor)
        return predict_sales(sales, self.clock(), periods)

    def predict_product_demand(
        self, product_id: int, actor: Optional[Actor], days: Optional[int] = None
    ) -> DemandPrediction:
        actor = require_actor(actor)
        days = days or settings.forecast_horizon_days
        if days <= 0:
            raise ValidationError("days must be positive", field="days")
        products, sales = self._snapshot(actor)
        return predict_product_demand(self._product(products, product_id), sales, days)

    def analyze_seasonal_patterns(self, actor: Optional[Actor]) -> List[SeasonalPattern]:
        actor = require_actor(actor)
        products, sales = self._snapshot(actor)
        return analyze_seasonal_patterns(products, sales)

    def predict_optimal_pricing(self, product_id: int, actor: Optional[Actor]) -> PricingSuggestion:
        actor = require_actor(actor)
        products, sales = self._snapshot(actor)
        return predict_optimal_pricing(self._product(products, product_id), sales)

    def get_analytics_dashboard(self, actor: Optional[Actor]) -> Dict:
        """Sales forecast, top demand predictions, seasonal and pricing insights."""
        actor = require_actor(actor)
        products, sales = self._snapshot(actor)
        in_stock = [p for p in products if p.stock_available > 0][:10]

        pricing = []
        for product in in_stock:
            suggestion = predict_optimal_pricing(product, sales)
            if suggestion.expected_revenue_change > 0:
                pricing.append({"product_id": product.id, "product_name": product.name, **suggestion.to_dict()})

        logger.debug("Analytics dashboard built from %s products, %s sales", len(products), len(sales))
        return {
            "sales_forecast": [f.to_dict() for f in predict_sales(sales, self.clock(), 7)],
            "top_demand_predictions": [
                predict_product_demand(p, sales, settings.forecast_horizon_days).to_dict() for p in in_stock
            ],
            "seasonal_insights": [p.to_dict() for p in analyze_seasonal_patterns(products, sales)[:5]],
            "pricing_insights": pricing,
        }
