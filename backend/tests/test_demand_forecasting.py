"""Tests for demand forecasting.

The forecast functions take plain snapshots (products and sales), so most
tests build records directly; the service tests go through a store.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from stockledger.core.errors import NotFound, ValidationError
from stockledger.models.sale import PaymentMethod, SaleStatus
from stockledger.schemas.product import ProductWithStock
from stockledger.schemas.sale import SaleCreate, SaleItemCreate, SaleItemRecord, SaleRecord
from stockledger.services.demand_forecasting_service import (
    DemandForecastingService,
    analyze_seasonal_patterns,
    calculate_demand_risk,
    calculate_trend,
    predict_optimal_pricing,
    predict_product_demand,
    predict_sales,
    season_of,
)
from stockledger.services.sale_service import SaleService

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)


def _product(product_id=1, stock=20, price="10.00", min_stock=None):
    return ProductWithStock(
        id=product_id, user_id="u", name=f"Producto {product_id}", unit_price=Decimal(price),
        stock_available=stock, stored_stock=stock, min_stock=min_stock,
        created_at=NOW, updated_at=NOW,
    )


def _sale(sale_id, created_at, lines, status=SaleStatus.COMPLETADA):
    items = [
        SaleItemRecord(
            product_id=pid, product_name=f"Producto {pid}", quantity=qty,
            unit_price=Decimal(price), total=Decimal(price) * qty,
        )
        for pid, qty, price in lines
    ]
    total = sum((i.total for i in items), Decimal("0"))
    return SaleRecord(
        id=sale_id, user_id="u", customer_id="c", items=items, subtotal=total, total=total,
        payment_method=PaymentMethod.EFECTIVO, status=status,
        created_at=created_at, updated_at=created_at,
    )


def _daily_sales(quantities, product_id=1, end=NOW):
    """One sale per day, the last one a day before *end*."""
    start = end - timedelta(days=len(quantities))
    return [
        _sale(i + 1, start + timedelta(days=i), [(product_id, qty, "10.00")])
        for i, qty in enumerate(quantities)
    ]


class TestHelpers:
    def test_trend(self):
        assert calculate_trend([1, 1, 3, 3]) == pytest.approx(2.0)
        assert calculate_trend([4, 4, 2, 2]) == pytest.approx(-0.5)
        assert calculate_trend([0, 0, 5, 5]) == 0.0
        assert calculate_trend([7]) == 0.0

    def test_seasons(self):
        assert season_of(datetime(2024, 1, 15)) == "WINTER"
        assert season_of(datetime(2024, 4, 15)) == "SPRING"
        assert season_of(datetime(2024, 7, 15)) == "SUMMER"
        assert season_of(datetime(2024, 10, 15)) == "FALL"
        assert season_of(datetime(2024, 12, 1)) == "WINTER"

    def test_demand_risk(self):
        assert calculate_demand_risk(100, 50, 0.4) == "HIGH"
        assert calculate_demand_risk(20, 50, 0.9) == "HIGH"
        assert calculate_demand_risk(40, 50, 0.9) == "MEDIUM"
        assert calculate_demand_risk(100, 50, 0.6) == "MEDIUM"
        assert calculate_demand_risk(100, 50, 0.9) == "LOW"


class TestPredictSales:
    def test_needs_a_week_of_history(self):
        assert predict_sales(_daily_sales([2] * 6), NOW) == []

    def test_flat_history(self):
        forecasts = predict_sales(_daily_sales([2] * 7), NOW, periods=3)

        assert len(forecasts) == 3
        assert [f.period for f in forecasts] == [NOW.date() + timedelta(days=d) for d in (1, 2, 3)]
        assert all(f.predicted_sales == pytest.approx(2.0) for f in forecasts)
        assert [f.confidence for f in forecasts] == pytest.approx([1.0, 0.9, 0.8])
        assert forecasts[0].trend == "STABLE"
        assert "Ventas recientes positivas" in forecasts[0].factors

    def test_confidence_floor(self):
        forecasts = predict_sales(_daily_sales([2] * 7), NOW, periods=10)
        assert forecasts[-1].confidence == pytest.approx(0.3)

    def test_increasing_trend(self):
        forecasts = predict_sales(_daily_sales([1, 1, 1, 1, 3, 3, 3, 3]), NOW, periods=1)
        assert forecasts[0].trend == "INCREASING"
        assert forecasts[0].predicted_sales == pytest.approx(15 / 7 * 1.2)

    def test_cancelled_sales_are_not_demand(self):
        sales = _daily_sales([2] * 7)
        sales.append(_sale(99, NOW - timedelta(days=1), [(1, 50, "10.00")], status=SaleStatus.CANCELADA))
        forecasts = predict_sales(sales, NOW, periods=1)
        assert forecasts[0].predicted_sales == pytest.approx(2.0)

    def test_to_dict(self):
        data = predict_sales(_daily_sales([2] * 7), NOW, periods=1)[0].to_dict()
        assert data["period"] == (NOW.date() + timedelta(days=1)).isoformat()
        assert data["predicted_sales"] == 2.0
        assert data["trend"] == "STABLE"


class TestPredictProductDemand:
    def test_without_history(self):
        prediction = predict_product_demand(_product(), [], days=30)
        assert prediction.predicted_demand == 0.0
        assert prediction.confidence == 0.0
        assert prediction.recommended_stock == 0
        assert prediction.risk_level == "HIGH"
        assert prediction.factors == ["Sin datos históricos"]

    def test_average_over_days_with_sales(self):
        day_one = NOW - timedelta(days=3)
        sales = [
            _sale(1, day_one, [(1, 2, "10.00")]),
            _sale(2, day_one + timedelta(hours=2), [(1, 4, "10.00")]),
            _sale(3, NOW - timedelta(days=1), [(1, 6, "10.00"), (2, 9, "5.00")]),
        ]
        prediction = predict_product_demand(_product(stock=5), sales, days=30)

        # 12 units over 2 selling days
        assert prediction.predicted_demand == pytest.approx(180.0)
        assert prediction.confidence == pytest.approx(0.3)
        assert prediction.risk_level == "HIGH"
        assert prediction.recommended_stock == 270
        assert "Stock bajo - alta demanda esperada" in prediction.factors

    def test_minimum_stock_factor(self):
        sales = [_sale(1, NOW - timedelta(days=1), [(1, 1, "10.00")])]
        prediction = predict_product_demand(_product(stock=3, min_stock=5), sales, days=7)
        assert "Alerta de stock mínimo" in prediction.factors


class TestSeasonalPatterns:
    def test_pattern_and_peak(self):
        sales = [
            _sale(1, datetime(2024, 1, 10, tzinfo=timezone.utc), [(1, 1, "10.00")]),
            _sale(2, datetime(2023, 7, 10, tzinfo=timezone.utc), [(1, 5, "10.00")]),
            _sale(3, datetime(2023, 7, 11, tzinfo=timezone.utc), [(1, 5, "10.00")]),
            _sale(4, datetime(2023, 8, 1, tzinfo=timezone.utc), [(1, 5, "10.00")]),
        ]
        patterns = analyze_seasonal_patterns([_product()], sales)

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.pattern == {"SPRING": 0, "SUMMER": 15, "FALL": 0, "WINTER": 1}
        assert pattern.peak_season == "SUMMER"
        assert pattern.low_season == "SPRING"
        assert pattern.seasonality == 1.0

    def test_skips_products_with_little_history(self):
        sales = [_sale(i, NOW - timedelta(days=i), [(1, 1, "10.00")]) for i in range(1, 4)]
        assert analyze_seasonal_patterns([_product()], sales) == []

    def test_even_demand_has_no_seasonality(self):
        sales = [
            _sale(i + 1, datetime(2023, month, 5, tzinfo=timezone.utc), [(1, 2, "10.00")])
            for i, month in enumerate((1, 4, 7, 10))
        ]
        assert analyze_seasonal_patterns([_product()], sales)[0].seasonality == 0.0


class TestOptimalPricing:
    def test_not_enough_history_keeps_price(self):
        suggestion = predict_optimal_pricing(_product(price="8.00"), [])
        assert suggestion.current_price == 8.0
        assert suggestion.suggested_price == 8.0
        assert suggestion.confidence == 0.0

    def test_ten_percent_increase(self):
        sales = [_sale(i, NOW - timedelta(days=i), [(1, 2, "10.00")]) for i in range(1, 6)]
        suggestion = predict_optimal_pricing(_product(), sales)

        assert suggestion.current_price == pytest.approx(10.0)
        assert suggestion.suggested_price == pytest.approx(11.0)
        assert suggestion.expected_demand_change == pytest.approx(-5.0)
        assert suggestion.expected_revenue_change == pytest.approx(4.5)
        assert suggestion.confidence == pytest.approx(0.25)


class TestDemandForecastingService:
    @pytest.fixture
    def forecasting(self, store, clock):
        return DemandForecastingService(store, clock)

    def test_product_demand_from_store(self, forecasting, make_product, store, clock, actor):
        product = make_product(name="Pan", stock=30)
        SaleService(store, clock).create_sale(
            SaleCreate(items=[SaleItemCreate(product_id=product.id, quantity=3, unit_price=Decimal("1.00"))]),
            actor,
        )
        prediction = forecasting.predict_product_demand(product.id, actor, days=10)
        assert prediction.product_name == "Pan"
        assert prediction.predicted_demand == pytest.approx(30.0)

    def test_unknown_product(self, forecasting, actor):
        with pytest.raises(NotFound):
            forecasting.predict_product_demand(999, actor)
        with pytest.raises(NotFound):
            forecasting.predict_optimal_pricing(999, actor)

    def test_invalid_periods(self, forecasting, actor):
        with pytest.raises(ValidationError):
            forecasting.predict_sales(actor, periods=0)

    def test_dashboard_shape(self, forecasting, make_product, actor):
        make_product(stock=4)
        dashboard = forecasting.get_analytics_dashboard(actor)
        assert set(dashboard) == {"sales_forecast", "top_demand_predictions", "seasonal_insights", "pricing_insights"}
        assert dashboard["sales_forecast"] == []
        assert len(dashboard["top_demand_predictions"]) == 1
