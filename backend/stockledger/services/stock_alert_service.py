"""Stock Alert Service - Threshold alerts over derived availability.

Alerts are recomputed on every read. Each alert has a stable identity,
``alert-{product_id}-{slug}``, scoped to ``{product_id, type}`` rather than
to a point in time. Acknowledgement is the only stored state:

- an acknowledgement stays in force while its condition keeps holding;
- once the condition clears, the acknowledgement is dropped, so the next
  time the condition triggers the alert is raised again.

Usage:
    from stockledger.services.stock_alert_service import StockAlertService

    alerts = StockAlertService(store).get_alerts(actor)
"""

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from stockledger.core.errors import NotFound, ValidationError
from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.models.alert import AlertType
from stockledger.repositories.interfaces import Store
from stockledger.schemas.alert import AcknowledgementRecord, StockAlert
from stockledger.schemas.product import ProductWithStock
from stockledger.services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

ALERT_SLUGS = {
    AlertType.OUT_OF_STOCK: "out-of-stock",
    AlertType.MIN_STOCK: "min-stock",
    AlertType.MAX_STOCK: "max-stock",
}
_SLUG_TYPES = {slug: alert_type for alert_type, slug in ALERT_SLUGS.items()}
_ALERT_ID_RE = re.compile(r"^alert-(\d+)-(out-of-stock|min-stock|max-stock)$")


def alert_id(product_id: int, alert_type: AlertType) -> str:
    return f"alert-{product_id}-{ALERT_SLUGS[AlertType(alert_type)]}"


def parse_alert_id(value: str) -> Tuple[int, AlertType]:
    """Split an alert id into its ``(product_id, type)`` identity."""
    match = _ALERT_ID_RE.match(value or "")
    if not match:
        raise ValidationError(f"Malformed alert id: {value!r}", field="alert_id")
    return int(match.group(1)), _SLUG_TYPES[match.group(2)]


def evaluate_alerts(product: ProductWithStock, now: datetime) -> List[StockAlert]:
    """Evaluate the threshold rules for one product.

    *product* must already carry derived availability. The rules are
    independent, so a product may raise several alerts at once. Pure: the
    timestamp comes from the caller.
    """
    stock = product.stock_available
    found: List[Tuple[AlertType, int, str]] = []

    if stock <= 0:
        found.append((AlertType.OUT_OF_STOCK, 0, f"{product.name} está agotado"))

    if product.min_stock is not None and 0 < stock <= product.min_stock:
        found.append((
            AlertType.MIN_STOCK,
            product.min_stock,
            f"{product.name} está por debajo del stock mínimo ({product.min_stock})",
        ))

    if product.max_stock is not None and stock >= product.max_stock:
        found.append((
            AlertType.MAX_STOCK,
            product.max_stock,
            f"{product.name} ha excedido el stock máximo ({product.max_stock})",
        ))

    return [
        StockAlert(
            id=alert_id(product.id, alert_type),
            product_id=product.id,
            product_name=product.name,
            type=alert_type,
            current_stock=stock,
            threshold=threshold,
            message=message,
            acknowledged=False,
            created_at=now,
            updated_at=now,
        )
        for alert_type, threshold, message in found
    ]


class StockAlertService:
    """Evaluates alerts for a tenant and manages acknowledgements."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock
        self.availability = AvailabilityService(store, clock)

    evaluate = staticmethod(evaluate_alerts)

    def get_alerts(self, actor: Optional[Actor], include_acknowledged: bool = True) -> List[StockAlert]:
        """Current alerts for every product, with acknowledgement applied."""
        actor = require_actor(actor)
        now = self.clock()
        products = self.availability.list_products_with_stock_info(actor)

        alerts: List[StockAlert] = []
        for product in products:
            alerts.extend(evaluate_alerts(product, now))

        active = {(a.product_id, a.type) for a in alerts}
        acknowledged = set()
        stale = []
        for ack in self.store.acknowledgements.list(actor.user_id):
            identity = (ack.product_id, ack.alert_type)
            if identity in active:
                acknowledged.add(identity)
            else:
                stale.append(identity)

        if stale:
            with self.store.transaction():
                for product_id, alert_type in stale:
                    self.store.acknowledgements.delete(actor.user_id, product_id, alert_type)
            logger.info("Cleared %s acknowledgement(s) whose condition no longer holds", len(stale))

        for alert in alerts:
            alert.acknowledged = (alert.product_id, alert.type) in acknowledged

        if not include_acknowledged:
            alerts = [a for a in alerts if not a.acknowledged]
        return alerts

    def acknowledge(self, alert_id_value: str, actor: Optional[Actor]) -> AcknowledgementRecord:
        """Persist an acknowledgement for the alert identity behind *alert_id_value*."""
        actor = require_actor(actor)
        product_id, alert_type = parse_alert_id(alert_id_value)
        with self.store.transaction():
            if self.store.products.get(actor.user_id, product_id, include_deleted=False) is None:
                raise NotFound("Product", product_id)
            ack = self.store.acknowledgements.put({
                "user_id": actor.user_id,
                "product_id": product_id,
                "alert_type": alert_type,
                "acknowledged_at": self.clock(),
                "acknowledged_by": actor.display_name,
            })
        logger.info("Alert %s acknowledged by %s", alert_id_value, actor.display_name)
        return ack

    def get_all_products_with_alerts(self, actor: Optional[Actor]) -> List[Dict[str, Any]]:
        """Products that currently raise at least one alert, with their alerts."""
        alerts = self.get_alerts(actor)
        products = {p.id: p for p in self.availability.list_products_with_stock_info(actor)}
        grouped: Dict[int, List[StockAlert]] = {}
        for alert in alerts:
            grouped.setdefault(alert.product_id, []).append(alert)
        return [
            {"product": products[pid], "alerts": product_alerts}
            for pid, product_alerts in grouped.items()
            if pid in products
        ]
