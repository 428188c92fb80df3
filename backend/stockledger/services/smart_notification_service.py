"""
Smart Notification Service
Actionable, prioritized notifications derived from stock, movement and audit data

Notifications are recomputed on each call; per-product
``notification_settings`` override the defaults below field by field.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
import logging
import math

from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.repositories.interfaces import Store
from stockledger.schemas.audit import AuditRecord
from stockledger.schemas.notification import (
    NotificationPriority,
    NotificationStats,
    NotificationType,
    SmartNotification,
)
from stockledger.schemas.product import ProductWithStock
from stockledger.services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

DEFAULT_NOTIFICATION_SETTINGS: Dict[str, Any] = {
    "low_stock_threshold": 10,
    "inactivity_days": 30,
    "expiration_warning_days": 7,
    "enable_low_stock_alerts": True,
    "enable_expiration_alerts": True,
    "enable_inactivity_alerts": True,
    "enable_audit_alerts": True,
}

AUDIT_LOOKBACK_DAYS = 7

PRIORITY_ORDER = {
    NotificationPriority.CRITICAL: 4,
    NotificationPriority.HIGH: 3,
    NotificationPriority.MEDIUM: 2,
    NotificationPriority.LOW: 1,
}


def effective_settings(product: ProductWithStock) -> Dict[str, Any]:
    merged = dict(DEFAULT_NOTIFICATION_SETTINGS)
    if product.notification_settings is not None:
        merged.update(product.notification_settings.model_dump(exclude_none=True))
    return merged


def _days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from *earlier* to *later*, rounded up."""
    if later.tzinfo is None:
        later = later.replace(tzinfo=timezone.utc)
    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=timezone.utc)
    return math.ceil((later - earlier).total_seconds() / 86400)


def _notification(
    type: NotificationType,
    priority: NotificationPriority,
    product_id: int,
    product_name: str,
    title: str,
    message: str,
    details: Dict[str, Any],
    action_required: bool,
    now: datetime,
    key: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> SmartNotification:
    suffix = key if key is not None else str(product_id)
    return SmartNotification(
        id=f"notif-{type.value.lower().replace('_', '-')}-{suffix}",
        type=type,
        priority=priority,
        product_id=product_id,
        product_name=product_name,
        title=title,
        message=message,
        details=details,
        action_required=action_required,
        expires_at=expires_at,
        created_at=now,
    )


def product_notifications(
    product: ProductWithStock,
    now: datetime,
    last_movement_at: Optional[datetime] = None,
) -> List[SmartNotification]:
    """Stock, expiration, inactivity and overstock notifications for one product."""
    settings = effective_settings(product)
    overrides = product.notification_settings
    stock = product.stock_available
    found = []

    if settings["enable_low_stock_alerts"]:
        threshold = (overrides and overrides.low_stock_threshold) or product.min_stock or 10
        if 0 < stock <= threshold:
            found.append(_notification(
                NotificationType.LOW_STOCK,
                NotificationPriority.HIGH if stock <= threshold * 0.5 else NotificationPriority.MEDIUM,
                product.id,
                product.name,
                "Stock Bajo",
                f"{product.name} tiene {stock} unidades (umbral: {threshold})",
                {
                    "current_stock": stock,
                    "threshold": threshold,
                    "suggested_reorder": max(threshold * 2, product.max_stock or threshold * 3),
                },
                True,
                now,
            ))

    if stock <= 0:
        found.append(_notification(
            NotificationType.OUT_OF_STOCK,
            NotificationPriority.CRITICAL,
            product.id,
            product.name,
            "Sin Stock",
            f"{product.name} está completamente agotado",
            {"current_stock": stock, "last_movement_date": last_movement_at},
            True,
            now,
        ))

    if settings["enable_expiration_alerts"] and product.expiration_date is not None:
        days_left = _days_between(product.expiration_date, now)
        if days_left <= settings["expiration_warning_days"]:
            critical = days_left <= 1
            if critical:
                when = "ya está vencido" if days_left <= 0 else "vence hoy"
            else:
                when = f"vence en {days_left} días"
            found.append(_notification(
                NotificationType.EXPIRATION_CRITICAL if critical else NotificationType.EXPIRATION_WARNING,
                NotificationPriority.CRITICAL if critical else NotificationPriority.HIGH,
                product.id,
                product.name,
                "Producto Vencido/Venciendo" if critical else "Próximo a Vencer",
                f"{product.name} {when}",
                {
                    "expiration_date": product.expiration_date,
                    "days_until_expiration": days_left,
                    "lot_number": product.lot_number,
                    "current_stock": stock,
                },
                True,
                now,
                expires_at=product.expiration_date,
            ))

    if settings["enable_inactivity_alerts"] and last_movement_at is not None:
        idle_days = _days_between(now, last_movement_at)
        if idle_days >= settings["inactivity_days"]:
            found.append(_notification(
                NotificationType.INACTIVE_PRODUCT,
                NotificationPriority.HIGH
                if idle_days > settings["inactivity_days"] * 2
                else NotificationPriority.MEDIUM,
                product.id,
                product.name,
                "Producto Inactivo",
                f"{product.name} no ha tenido movimientos en {idle_days} días",
                {
                    "days_since_last_movement": idle_days,
                    "last_movement_date": last_movement_at,
                    "current_stock": stock,
                    "suggested_action": "promocion" if stock > 0 else "descontinuar",
                },
                False,
                now,
            ))

    if product.max_stock and stock > product.max_stock:
        found.append(_notification(
            NotificationType.OVERSTOCK,
            NotificationPriority.LOW,
            product.id,
            product.name,
            "Sobrestock",
            f"{product.name} supera el stock máximo ({stock}/{product.max_stock})",
            {"current_stock": stock, "max_stock": product.max_stock, "excess": stock - product.max_stock},
            False,
            now,
        ))

    return found


def audit_notification(audit: AuditRecord, product: Optional[ProductWithStock]) -> Optional[SmartNotification]:
    """Notification for an audit whose count differed from the expected stock."""
    if audit.difference == 0:
        return None
    if product is not None and not effective_settings(product)["enable_audit_alerts"]:
        return None

    name = product.name if product is not None else "Producto Desconocido"
    return _notification(
        NotificationType.AUDIT_DIFFERENCE,
        NotificationPriority.HIGH if abs(audit.difference) > 10 else NotificationPriority.MEDIUM,
        audit.product_id,
        name,
        "Diferencia en Auditoría",
        f"Auditoría de {product.name if product is not None else 'producto'} "
        f"encontró diferencia de {audit.difference:+d} unidades",
        {
            "expected_count": audit.expected_count,
            "actual_count": audit.actual_count,
            "difference": audit.difference,
            "audit_date": audit.audit_date,
            "audit_id": audit.id,
        },
        True,
        audit.audit_date,
        key=str(audit.id),
    )


def sort_notifications(notifications: List[SmartNotification]) -> List[SmartNotification]:
    """Highest priority first, newest first within a priority."""
    by_recency = sorted(notifications, key=lambda n: n.created_at, reverse=True)
    return sorted(by_recency, key=lambda n: PRIORITY_ORDER[n.priority], reverse=True)


def notification_stats(notifications: List[SmartNotification]) -> NotificationStats:
    by_type: Dict[str, int] = {}
    by_priority: Dict[str, int] = {}
    for n in notifications:
        by_type[n.type.value] = by_type.get(n.type.value, 0) + 1
        by_priority[n.priority.value] = by_priority.get(n.priority.value, 0) + 1
    return NotificationStats(
        total=len(notifications),
        by_type=by_type,
        by_priority=by_priority,
        unacknowledged=sum(1 for n in notifications if not n.acknowledged),
        action_required=sum(1 for n in notifications if n.action_required),
    )


class SmartNotificationService:
    """Generates notifications for a tenant."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock
        self.availability = AvailabilityService(store, clock)

    def _last_movement_at(self, actor: Actor, product_id: int) -> Optional[datetime]:
        latest = self.store.movements.list(actor.user_id, product_id=product_id, limit=1)
        return latest[0].created_at if latest else None

    def generate(self, actor: Optional[Actor]) -> List[SmartNotification]:
        actor = require_actor(actor)
        now = self.clock()
        products = self.availability.list_products_with_stock_info(actor)

        notifications: List[SmartNotification] = []
        for product in products:
            notifications.extend(
                product_notifications(product, now, self._last_movement_at(actor, product.id))
            )

        by_id = {p.id: p for p in products}
        since = now - timedelta(days=AUDIT_LOOKBACK_DAYS)
        for audit in self.store.audits.list(actor.user_id, since=since):
            notification = audit_notification(audit, by_id.get(audit.product_id))
            if notification is not None:
                notifications.append(notification)

        logger.debug("Generated %s notifications for %s products", len(notifications), len(products))
        return sort_notifications(notifications)

    def get_notification_stats(self, actor: Optional[Actor]) -> NotificationStats:
        return notification_stats(self.generate(actor))
