"""Tests for product recommendations and insights."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from stockledger.core.errors import NotFound, ValidationError
from stockledger.models.sale import PaymentMethod, SaleStatus
from stockledger.schemas.product import ProductWithStock
from stockledger.schemas.sale import SaleCreate, SaleItemCreate, SaleItemRecord, SaleRecord
from stockledger.services.recommendation_service import (
    RecommendationService,
    build_product_stats,
    build_similarity,
    customer_recommendations,
    get_recommendations,
    jaccard,
    product_insights,
    time_of_day,
    trending_recommendations,
)
from stockledger.services.sale_service import SaleService

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)
MORNING = NOW - timedelta(days=2, hours=3)

NAMES = {1: "Café", 2: "Leche", 3: "Azúcar", 4: "Té"}


def _product(product_id, price="5.00"):
    return ProductWithStock(
        id=product_id, user_id="u", name=NAMES[product_id], unit_price=Decimal(price),
        stock_available=20, stored_stock=20, created_at=NOW, updated_at=NOW,
    )


def _sale(sale_id, customer_id, product_ids, created_at=MORNING, status=SaleStatus.COMPLETADA):
    items = [
        SaleItemRecord(
            product_id=pid, product_name=NAMES[pid], quantity=1,
            unit_price=Decimal("5.00"), total=Decimal("5.00"),
        )
        for pid in product_ids
    ]
    total = sum((i.total for i in items), Decimal("0"))
    return SaleRecord(
        id=sale_id, user_id="u", customer_id=customer_id, items=items, subtotal=total, total=total,
        payment_method=PaymentMethod.EFECTIVO, status=status,
        created_at=created_at, updated_at=created_at,
    )


@pytest.fixture
def catalog():
    return [_product(pid) for pid in NAMES]


@pytest.fixture
def history():
    """c1 and c2 buy coffee with milk, c3 coffee with sugar, c4 only tea."""
    return [
        _sale(1, "c1", [1, 2]),
        _sale(2, "c2", [1, 2]),
        _sale(3, "c3", [1, 3]),
        _sale(4, "c4", [4]),
    ]


class TestStatistics:
    def test_time_of_day(self):
        assert time_of_day(datetime(2024, 6, 3, 7)) == "MORNING"
        assert time_of_day(datetime(2024, 6, 3, 12)) == "AFTERNOON"
        assert time_of_day(datetime(2024, 6, 3, 19)) == "EVENING"
        assert time_of_day(datetime(2024, 6, 3, 23)) == "NIGHT"
        assert time_of_day(datetime(2024, 6, 3, 3)) == "NIGHT"

    def test_jaccard(self):
        assert jaccard({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert jaccard(set(), set()) == 0.0

    def test_product_stats(self, catalog, history):
        stats = build_product_stats(catalog, history)
        coffee = stats[1]
        assert coffee.frequency == 3
        assert coffee.total_sold == 3
        assert coffee.total_revenue == pytest.approx(15.0)
        assert coffee.last_sold == MORNING
        assert coffee.co_occurrences == {2: 2, 3: 1}
        assert stats[4].co_occurrences == {}

    def test_similarity_over_customers(self, catalog, history):
        matrix = build_similarity([p.id for p in catalog], history)
        assert matrix[1][2] == pytest.approx(2 / 3)
        assert matrix[1][3] == pytest.approx(1 / 3)
        assert matrix[1][4] == 0.0
        assert 1 not in matrix[1]

    def test_cancelled_sales_do_not_count(self, catalog, history):
        history.append(_sale(5, "c5", [1, 4], status=SaleStatus.CANCELADA))
        stats = build_product_stats(catalog, history)
        assert stats[4].frequency == 1
        assert build_similarity([1, 4], history)[1][4] == 0.0


class TestRecommendations:
    def test_cross_sell_then_trending(self, catalog, history):
        recs = get_recommendations(catalog, history, NOW, current_products=[1])

        assert [(r.product_id, r.type) for r in recs] == [(2, "CROSS_SELL"), (3, "CROSS_SELL"), (4, "TRENDING")]
        assert recs[0].confidence == pytest.approx(2 / 3)
        assert recs[0].reason == "Frecuentemente comprado junto con Café"
        assert recs[0].expected_value == pytest.approx(5.0)
        assert all(r.product_id != 1 for r in recs)

    def test_limit(self, catalog, history):
        recs = get_recommendations(catalog, history, NOW, current_products=[1], limit=1)
        assert [r.product_id for r in recs] == [2]

    def test_customer_based(self, catalog, history):
        stats = build_product_stats(catalog, history)
        [rec] = customer_recommendations("c1", history, stats)
        assert rec.product_id == 3
        assert rec.type == "CUSTOMER_BASED"
        assert rec.confidence == pytest.approx(1 / 3)

    def test_unknown_customer_gets_nothing_personal(self, catalog, history):
        stats = build_product_stats(catalog, history)
        assert customer_recommendations("nobody", history, stats) == []

    def test_trending_window(self, catalog, history):
        history.append(_sale(5, "c5", [4], created_at=NOW - timedelta(days=40)))
        stale = [_sale(6, "c6", [3], created_at=NOW - timedelta(days=45))]
        stats = build_product_stats(catalog, stale)
        assert trending_recommendations(stats, NOW) == []

        recent = trending_recommendations(build_product_stats(catalog, history), NOW)
        assert [r.product_id for r in recent][0] == 1
        assert recent[0].confidence == pytest.approx(0.3)
        assert recent[0].reason == "Producto en tendencia - 3 ventas recientes"

    def test_empty_history(self, catalog):
        assert get_recommendations(catalog, [], NOW, current_products=[1], customer_id="c1") == []

    def test_to_dict(self, catalog, history):
        [rec] = get_recommendations(catalog, history, NOW, current_products=[1], limit=1)
        assert rec.to_dict() == {
            "product_id": 2,
            "product_name": "Leche",
            "confidence": 0.667,
            "reason": "Frecuentemente comprado junto con Café",
            "type": "CROSS_SELL",
            "expected_value": 5.0,
        }


class TestProductInsights:
    def test_insights(self, catalog, history):
        insights = product_insights(catalog[0], history)
        assert insights.popularity == pytest.approx(0.3)
        assert insights.trend == "STABLE"
        assert insights.best_selling_period == "MORNING"
        assert insights.average_order_value == pytest.approx(5.0)
        assert insights.cross_sell_opportunities == [2, 3]

    def test_frequent_product_is_increasing(self, catalog):
        sales = [_sale(i, f"c{i}", [1], created_at=NOW - timedelta(hours=i + 4)) for i in range(6)]
        assert product_insights(catalog[0], sales).trend == "INCREASING"

    def test_without_sales(self, catalog):
        insights = product_insights(catalog[3], [])
        assert insights.to_dict() == {
            "product_id": 4,
            "product_name": "Té",
            "popularity": 0.0,
            "trend": "DECREASING",
            "best_selling_period": "MORNING",
            "average_order_value": 0.0,
            "cross_sell_opportunities": [],
        }


class TestRecommendationService:
    @pytest.fixture
    def recommender(self, store, clock):
        return RecommendationService(store, clock)

    def test_recommendations_from_store(self, recommender, make_product, store, clock, actor):
        coffee = make_product(name="Café", stock=20, price="4.50")
        milk = make_product(name="Leche", stock=20, price="1.20")
        sales = SaleService(store, clock)
        for customer in ("c1", "c2"):
            sales.create_sale(
                SaleCreate(customer_id=customer, items=[
                    SaleItemCreate(product_id=coffee.id, quantity=1, unit_price=Decimal("4.50")),
                    SaleItemCreate(product_id=milk.id, quantity=2, unit_price=Decimal("1.20")),
                ]),
                actor,
            )

        [rec] = recommender.get_recommendations(actor, current_products=[coffee.id])
        assert rec.product_id == milk.id
        assert rec.type == "CROSS_SELL"
        assert rec.confidence == pytest.approx(1.0)
        assert rec.expected_value == pytest.approx(2.40)

    def test_tenants_do_not_mix(self, recommender, make_product, store, clock, actor, other_actor):
        product = make_product(name="Café", stock=5, owner=other_actor)
        SaleService(store, clock).create_sale(
            SaleCreate(items=[SaleItemCreate(product_id=product.id, quantity=1, unit_price=Decimal("4.50"))]),
            other_actor,
        )
        assert recommender.get_recommendations(actor) == []

    def test_insights_unknown_product(self, recommender, actor):
        with pytest.raises(NotFound):
            recommender.get_product_insights(999, actor)

    def test_invalid_limit(self, recommender, actor):
        with pytest.raises(ValidationError):
            recommender.get_recommendations(actor, limit=0)
