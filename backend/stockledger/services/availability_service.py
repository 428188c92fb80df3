"""Availability Service - Derived, sellable stock per product.

Sellable stock is the stored balance minus live reservations, floored at
zero. It is recomputed on every read and never written back.
"""

from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from stockledger.core.errors import NotFound
from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.repositories.interfaces import Store
from stockledger.schemas.product import ProductRecord, ProductWithStock
from stockledger.schemas.stock import ReservationRecord
from stockledger.services.reservation_service import ReservationService


def project_stock(product: ProductRecord, live_reservations: Iterable[ReservationRecord]) -> ProductWithStock:
    """Pure projection of *product* given its live reservations.

    Reservations for other products are ignored, so the same list can be
    passed for every product of a batch.
    """
    if isinstance(product, ProductWithStock):
        stored = product.stored_stock
    else:
        stored = product.stock_available
    reserved = sum(r.quantity for r in live_reservations if r.product_id == product.id)

    data = product.model_dump()
    data.update({
        "stored_stock": stored,
        "reserved_stock": reserved,
        "stock_available": max(0, stored - reserved),
    })
    return ProductWithStock.model_validate(data)


class AvailabilityService:
    """Applies live reservations to stored balances."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.reservations = ReservationService(store, clock)

    def with_stock_info(self, product: ProductRecord, actor: Optional[Actor]) -> ProductWithStock:
        live = self.reservations.list_live(actor, product_id=product.id)
        return project_stock(product, live)

    def with_stock_info_all(
        self, products: List[ProductRecord], actor: Optional[Actor]
    ) -> List[ProductWithStock]:
        """Batch form: loads live reservations once and groups them per product."""
        live = self.reservations.list_live(actor)
        by_product: Dict[int, List[ReservationRecord]] = defaultdict(list)
        for reservation in live:
            by_product[reservation.product_id].append(reservation)
        return [project_stock(p, by_product.get(p.id, [])) for p in products]

    def get_product_with_stock_info(self, product_id: int, actor: Optional[Actor]) -> ProductWithStock:
        actor = require_actor(actor)
        product = self.store.products.get(actor.user_id, product_id, include_deleted=False)
        if product is None:
            raise NotFound("Product", product_id)
        return self.with_stock_info(product, actor)

    def list_products_with_stock_info(self, actor: Optional[Actor]) -> List[ProductWithStock]:
        actor = require_actor(actor)
        return self.with_stock_info_all(self.store.products.list(actor.user_id), actor)
