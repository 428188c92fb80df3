"""Product catalog service.

Products are soft-deleted only: their ledger history stays, reads by id
still return the tombstone (``is_deleted=True``), and every stock write
against them fails with NotFound.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from stockledger.core.errors import NotFound, ValidationError
from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.models.stock import MovementType
from stockledger.repositories.interfaces import Store
from stockledger.schemas.product import ProductCreate, ProductRecord, ProductUpdate
from stockledger.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

INITIAL_STOCK_REASON = "Stock inicial"


def validate_thresholds(min_stock: Optional[int], max_stock: Optional[int]) -> None:
    if min_stock is not None and min_stock < 0:
        raise ValidationError("min_stock must not be negative", field="min_stock")
    if max_stock is not None and max_stock < 0:
        raise ValidationError("max_stock must not be negative", field="max_stock")
    if min_stock is not None and max_stock is not None and min_stock > max_stock:
        raise ValidationError("min_stock must not exceed max_stock", field="min_stock")


class ProductService:
    """Catalog CRUD; opening stock is booked through the ledger."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock
        self.ledger = StockLedgerService(store, clock)

    def create_product(self, data: ProductCreate, actor: Optional[Actor]) -> ProductRecord:
        actor = require_actor(actor)
        validate_thresholds(data.min_stock, data.max_stock)
        if data.unit_price < 0:
            raise ValidationError("unit_price must not be negative", field="unit_price")

        opening = data.stock_available if data.stock_available is not None else data.quantity
        if opening < 0:
            raise ValidationError("Opening stock must not be negative", field="stock_available")

        now = self.clock()
        with self.store.transaction():
            product = self.store.products.add({
                "user_id": actor.user_id,
                "name": data.name.strip(),
                "brand": data.brand,
                "unit_price": data.unit_price,
                "quantity": 0,
                "stock_available": 0,
                "reserved_stock": 0,
                "min_stock": data.min_stock,
                "max_stock": data.max_stock,
                "expiration_date": data.expiration_date,
                "lot_number": data.lot_number,
                "notification_settings": data.notification_settings,
                "created_at": now,
                "updated_at": now,
            })
            if opening > 0:
                self.ledger.record(product.id, MovementType.ENTRADA, opening, INITIAL_STOCK_REASON, actor)
                product = self.store.products.get(actor.user_id, product.id)

        logger.info("Product %s created: %s (opening stock %s)", product.id, product.name, opening)
        return product

    def get_product(self, product_id: int, actor: Optional[Actor]) -> ProductRecord:
        """Fetch a product, tombstones included."""
        actor = require_actor(actor)
        product = self.store.products.get(actor.user_id, product_id)
        if product is None:
            raise NotFound("Product", product_id)
        return product

    def list_products(self, actor: Optional[Actor], include_deleted: bool = False) -> List[ProductRecord]:
        actor = require_actor(actor)
        return self.store.products.list(actor.user_id, include_deleted=include_deleted)

    def update_product(self, product_id: int, data: ProductUpdate, actor: Optional[Actor]) -> ProductRecord:
        actor = require_actor(actor)
        changes = data.model_dump(exclude_unset=True)
        with self.store.transaction():
            product = self.store.products.get(actor.user_id, product_id, include_deleted=False)
            if product is None:
                raise NotFound("Product", product_id)
            validate_thresholds(
                changes.get("min_stock", product.min_stock),
                changes.get("max_stock", product.max_stock),
            )
            changes["updated_at"] = self.clock()
            product = self.store.products.update(actor.user_id, product_id, changes)
        logger.info("Product %s updated: %s", product_id, sorted(k for k in changes if k != "updated_at"))
        return product

    def delete_product(self, product_id: int, actor: Optional[Actor]) -> ProductRecord:
        """Soft-delete a product and drop its reservations."""
        actor = require_actor(actor)
        now = self.clock()
        with self.store.transaction():
            product = self.store.products.get(actor.user_id, product_id, include_deleted=False)
            if product is None:
                raise NotFound("Product", product_id)
            for reservation in self.store.reservations.list(actor.user_id, product_id=product_id):
                self.store.reservations.delete(actor.user_id, reservation.id)
            product = self.store.products.update(actor.user_id, product_id, {
                "is_deleted": True,
                "deleted_at": now,
                "updated_at": now,
            })
        logger.info("Product %s soft-deleted", product_id)
        return product
