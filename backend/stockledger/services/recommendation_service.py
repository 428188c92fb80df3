"""
Recommendation Service
Product suggestions mined from co-purchase history

Features:
- Cross-sell: products bought by the same customers (Jaccard similarity)
- Customer-based: what customers with overlapping baskets also bought
- Trending: most frequently sold products in the recent window
- Per-product insights (popularity, trend, best selling period)

Everything is recomputed from a snapshot on each call; there is no cached
similarity matrix. Cancelled sales do not count as purchases.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
import logging

from stockledger.core.errors import NotFound, ValidationError
from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.repositories.interfaces import Store
from stockledger.schemas.product import ProductWithStock
from stockledger.schemas.sale import SaleRecord
from stockledger.services.availability_service import AvailabilityService
from stockledger.services.demand_forecasting_service import HISTORY_LIMIT, demand_history

logger = logging.getLogger(__name__)

MIN_SIMILARITY = 0.1
TRENDING_WINDOW_DAYS = 30
TRENDING_POOL = 10
FREQUENCY_SCALE = 10
CROSS_SELL_OPPORTUNITIES = 3

CROSS_SELL = "CROSS_SELL"
CUSTOMER_BASED = "CUSTOMER_BASED"
TRENDING = "TRENDING"


class ProductRecommendation:
    """A suggested product and why"""
    def __init__(
        self,
        product_id: int,
        product_name: str,
        confidence: float,
        reason: str,
        type: str,
        expected_value: float,
    ):
        self.product_id = product_id
        self.product_name = product_name
        self.confidence = confidence
        self.reason = reason
        self.type = type
        self.expected_value = expected_value

    def to_dict(self) -> Dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "confidence": round(self.confidence, 3),
            "reason": self.reason,
            "type": self.type,
            "expected_value": round(self.expected_value, 2),
        }


class ProductStats:
    """Sales aggregates for one product"""
    def __init__(self, product: ProductWithStock):
        self.product_id = product.id
        self.product_name = product.name
        self.unit_price = float(product.unit_price)
        self.total_sold = 0
        self.total_revenue = 0.0
        self.frequency = 0
        self.last_sold: Optional[datetime] = None
        self.co_occurrences: Counter = Counter()
        self.time_pattern: Counter = Counter()

    @property
    def average_order_value(self) -> float:
        if not self.frequency:
            return self.unit_price
        return self.total_revenue / self.frequency


class ProductInsights:
    def __init__(
        self,
        product_id: int,
        product_name: str,
        popularity: float,
        trend: str,
        best_selling_period: str,
        average_order_value: float,
        cross_sell_opportunities: List[int],
    ):
        self.product_id = product_id
        self.product_name = product_name
        self.popularity = popularity
        self.trend = trend
        self.best_selling_period = best_selling_period
        self.average_order_value = average_order_value
        self.cross_sell_opportunities = cross_sell_opportunities

    def to_dict(self) -> Dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "popularity": round(self.popularity, 2),
            "trend": self.trend,
            "best_selling_period": self.best_selling_period,
            "average_order_value": round(self.average_order_value, 2),
            "cross_sell_opportunities": list(self.cross_sell_opportunities),
        }


# ===== STATISTICS =====

def time_of_day(moment: datetime) -> str:
    hour = moment.hour
    if 6 <= hour < 12:
        return "MORNING"
    if 12 <= hour < 18:
        return "AFTERNOON"
    if 18 <= hour < 22:
        return "EVENING"
    return "NIGHT"


def build_product_stats(products: List[ProductWithStock], sales: List[SaleRecord]) -> Dict[int, ProductStats]:
    """Aggregate every catalog product; lines for unknown products are ignored."""
    stats = {p.id: ProductStats(p) for p in products}
    for sale in demand_history(sales):
        period = time_of_day(sale.created_at)
        for item in sale.items:
            stat = stats.get(item.product_id)
            if stat is None:
                continue
            stat.total_sold += item.quantity
            stat.total_revenue += float(item.total)
            stat.frequency += 1
            if stat.last_sold is None or sale.created_at > stat.last_sold:
                stat.last_sold = sale.created_at
            for other in sale.items:
                if other.product_id != item.product_id:
                    stat.co_occurrences[other.product_id] += 1
            stat.time_pattern[period] += 1
    return stats


def customers_by_product(sales: List[SaleRecord]) -> Dict[int, Set[str]]:
    buyers: Dict[int, Set[str]] = defaultdict(set)
    for sale in demand_history(sales):
        for item in sale.items:
            buyers[item.product_id].add(sale.customer_id)
    return buyers


def jaccard(a: Set, b: Set) -> float:
    union = len(a | b)
    return len(a & b) / union if union else 0.0


def build_similarity(product_ids: Iterable[int], sales: List[SaleRecord]) -> Dict[int, Dict[int, float]]:
    """Product-to-product similarity over the sets of customers who bought each."""
    ids = list(product_ids)
    buyers = customers_by_product(sales)
    matrix: Dict[int, Dict[int, float]] = {pid: {} for pid in ids}
    for a in ids:
        for b in ids:
            if a != b:
                matrix[a][b] = jaccard(buyers.get(a, set()), buyers.get(b, set()))
    return matrix


# ===== RECOMMENDERS =====

def cross_sell_recommendations(
    current_products: List[int],
    stats: Dict[int, ProductStats],
    similarity: Dict[int, Dict[int, float]],
) -> List[ProductRecommendation]:
    recommendations = []
    for product_id in current_products:
        anchor = stats.get(product_id)
        if anchor is None:
            continue
        for other_id, score in similarity.get(product_id, {}).items():
            if score <= MIN_SIMILARITY or other_id in current_products:
                continue
            other = stats[other_id]
            recommendations.append(ProductRecommendation(
                product_id=other_id,
                product_name=other.product_name,
                confidence=score,
                reason=f"Frecuentemente comprado junto con {anchor.product_name}",
                type=CROSS_SELL,
                expected_value=other.average_order_value,
            ))
    return recommendations


def customer_recommendations(
    customer_id: str,
    sales: List[SaleRecord],
    stats: Dict[int, ProductStats],
    exclude: Iterable[int] = (),
) -> List[ProductRecommendation]:
    """Products that customers with similar baskets bought and this one has not."""
    baskets: Dict[str, Set[int]] = defaultdict(set)
    for sale in demand_history(sales):
        baskets[sale.customer_id].update(item.product_id for item in sale.items)

    mine = baskets.get(customer_id)
    if not mine:
        return []

    skipped = mine | set(exclude)
    best: Dict[int, float] = {}
    for other_customer, basket in baskets.items():
        if other_customer == customer_id:
            continue
        score = jaccard(mine, basket)
        if score <= MIN_SIMILARITY:
            continue
        for product_id in basket - skipped:
            if product_id in stats and score > best.get(product_id, 0.0):
                best[product_id] = score

    return [
        ProductRecommendation(
            product_id=product_id,
            product_name=stats[product_id].product_name,
            confidence=score,
            reason="Comprado por clientes con compras similares",
            type=CUSTOMER_BASED,
            expected_value=stats[product_id].average_order_value,
        )
        for product_id, score in best.items()
    ]


def trending_recommendations(
    stats: Dict[int, ProductStats], now: datetime, exclude: Iterable[int] = ()
) -> List[ProductRecommendation]:
    """Most frequently sold products among those sold in the last 30 days."""
    cutoff = now - timedelta(days=TRENDING_WINDOW_DAYS)
    recent = [s for s in stats.values() if s.last_sold is not None and s.last_sold >= cutoff]
    recent.sort(key=lambda s: s.frequency, reverse=True)

    excluded = set(exclude)
    return [
        ProductRecommendation(
            product_id=stat.product_id,
            product_name=stat.product_name,
            confidence=min(stat.frequency / FREQUENCY_SCALE, 1.0),
            reason=f"Producto en tendencia - {stat.frequency} ventas recientes",
            type=TRENDING,
            expected_value=stat.average_order_value,
        )
        for stat in recent[:TRENDING_POOL]
        if stat.product_id not in excluded
    ]


def get_recommendations(
    products: List[ProductWithStock],
    sales: List[SaleRecord],
    now: datetime,
    current_products: Optional[List[int]] = None,
    customer_id: Optional[str] = None,
    limit: int = 5,
) -> List[ProductRecommendation]:
    """Cross-sell, customer-based and trending suggestions, best first.

    A product suggested by more than one recommender keeps its first
    suggestion, in that order.
    """
    current = list(current_products or [])
    stats = build_product_stats(products, sales)

    candidates: List[ProductRecommendation] = []
    if current:
        candidates.extend(cross_sell_recommendations(current, stats, build_similarity(stats, sales)))
    if customer_id:
        candidates.extend(customer_recommendations(customer_id, sales, stats, exclude=current))
    candidates.extend(trending_recommendations(stats, now, exclude=current))

    seen: Set[int] = set()
    unique = []
    for rec in candidates:
        if rec.product_id not in seen:
            seen.add(rec.product_id)
            unique.append(rec)
    unique.sort(key=lambda r: r.confidence, reverse=True)
    return unique[:limit]


def product_insights(product: ProductWithStock, sales: List[SaleRecord]) -> ProductInsights:
    stat = build_product_stats([product], sales)[product.id]

    if stat.frequency > 5:
        trend = "INCREASING"
    elif stat.frequency > 2:
        trend = "STABLE"
    else:
        trend = "DECREASING"

    best_period = "MORNING"
    best_count = 0
    for period, count in stat.time_pattern.items():
        if count > best_count:
            best_period, best_count = period, count

    return ProductInsights(
        product_id=product.id,
        product_name=product.name,
        popularity=min(stat.frequency / FREQUENCY_SCALE, 1.0),
        trend=trend,
        best_selling_period=best_period,
        average_order_value=stat.total_revenue / stat.frequency if stat.frequency else 0.0,
        cross_sell_opportunities=[pid for pid, _ in stat.co_occurrences.most_common(CROSS_SELL_OPPORTUNITIES)],
    )


class RecommendationService:
    """Loads a tenant snapshot and runs the recommenders over it."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock
        self.availability = AvailabilityService(store, clock)

    def _snapshot(self, actor: Actor) -> Tuple[List[ProductWithStock], List[SaleRecord]]:
        products = self.availability.list_products_with_stock_info(actor)
        sales = self.store.sales.list(actor.user_id, limit=HISTORY_LIMIT)
        return products, sales

    def get_recommendations(
        self,
        actor: Optional[Actor],
        current_products: Optional[List[int]] = None,
        customer_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[ProductRecommendation]:
        actor = require_actor(actor)
        if limit <= 0:
            raise ValidationError("limit must be positive", field="limit")
        products, sales = self._snapshot(actor)
        recommendations = get_recommendations(
            products, sales, self.clock(), current_products=current_products, customer_id=customer_id, limit=limit,
        )
        logger.debug(
            "%s recommendation(s) from %s products, %s sales", len(recommendations), len(products), len(sales)
        )
        return recommendations

    def get_product_insights(self, product_id: int, actor: Optional[Actor]) -> ProductInsights:
        actor = require_actor(actor)
        products, sales = self._snapshot(actor)
        for product in products:
            if product.id == product_id:
                return product_insights(product, sales)
        raise NotFound("Product", product_id)
