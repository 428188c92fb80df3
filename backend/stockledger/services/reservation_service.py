"""Reservation Service - Time-bounded holds against a product's stock.

A reservation lowers the quantity available to sell without touching the
ledger or the stored balance. Reservations expire passively: every read
filters on ``expires_at`` at call time, so an expired hold never counts even
if nobody cancelled it.

Sales use the sale id (as a string) as the reservation ``order_id``; their
holds are released when the sale completes or is cancelled.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from stockledger.core.errors import InsufficientStockError, NotFound, ValidationError
from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.repositories.interfaces import Store
from stockledger.schemas.stock import ReservationRecord

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReservationService:
    """Creates, cancels and lists reservations."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def reserve(
        self,
        product_id: int,
        quantity: int,
        order_id: str,
        reason: str,
        actor: Optional[Actor],
        customer_name: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> ReservationRecord:
        """Hold *quantity* units of a product for an order.

        Over-reservation is refused: the request must fit in the product's
        derived availability at the time of the call.
        """
        actor = require_actor(actor)
        if quantity <= 0:
            raise ValidationError("Reservation quantity must be greater than zero", field="quantity")
        if not order_id:
            raise ValidationError("order_id is required", field="order_id")

        now = self.clock()
        if expires_at is not None:
            expires_at = _aware(expires_at)
            if expires_at <= now:
                raise ValidationError("expires_at must be in the future", field="expires_at")

        with self.store.transaction():
            product = self.store.products.get(actor.user_id, product_id, include_deleted=False)
            if product is None:
                raise NotFound("Product", product_id)

            reserved = self.reserved_quantity(actor, product_id)
            available = max(0, product.stock_available - reserved)
            if quantity > available:
                logger.warning(
                    "Reservation refused for product %s: need %s, available %s",
                    product_id, quantity, available,
                )
                raise InsufficientStockError(product.name, product_id, available, quantity)

            reservation = self.store.reservations.add({
                "user_id": actor.user_id,
                "user_name": actor.display_name,
                "product_id": product_id,
                "quantity": quantity,
                "order_id": order_id,
                "reason": reason or "",
                "customer_name": customer_name,
                "expires_at": expires_at,
                "created_at": now,
                "updated_at": now,
            })

        logger.info(
            "Reserved %s x product %s for order %s (reservation %s)",
            quantity, product_id, order_id, reservation.id,
        )
        return reservation

    def cancel(self, reservation_id: int, actor: Optional[Actor]) -> bool:
        """Remove a reservation. Returns False when it was already gone."""
        actor = require_actor(actor)
        with self.store.transaction():
            removed = self.store.reservations.delete(actor.user_id, reservation_id)
        if removed:
            logger.info("Reservation %s cancelled", reservation_id)
        else:
            logger.debug("Reservation %s already gone", reservation_id)
        return removed

    def list_live(self, actor: Optional[Actor], product_id: Optional[int] = None) -> List[ReservationRecord]:
        """Reservations not expired as of now, newest first."""
        actor = require_actor(actor)
        now = self.clock()
        reservations = self.store.reservations.list(actor.user_id, product_id=product_id, live_at=now)
        return [r for r in reservations if r.is_live(now)]

    def reserved_quantity(self, actor: Optional[Actor], product_id: int) -> int:
        return sum(r.quantity for r in self.list_live(actor, product_id=product_id))

    def release_for_order(self, order_id: str, actor: Optional[Actor]) -> int:
        """Cancel every reservation held for *order_id*, expired ones included."""
        actor = require_actor(actor)
        released = 0
        with self.store.transaction():
            for reservation in self.store.reservations.list(actor.user_id, order_id=order_id):
                if self.store.reservations.delete(actor.user_id, reservation.id):
                    released += 1
        if released:
            logger.info("Released %s reservation(s) for order %s", released, order_id)
        return released
