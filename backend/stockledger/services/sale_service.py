"""Sale Service - Sale creation and status lifecycle.

Status machine (all transitions are manual):

    PENDIENTE -> CONFIRMADA -> EN_PROCESO -> COMPLETADA -> DEVUELTA
        |
        +-> CANCELADA

Entering COMPLETADA is the only event that debits the ledger. It runs as one
store transaction:

1. Pre-check every line (aggregated per product) against the stored balance
   minus what other orders hold live
2. Claim the sale with a compare-and-swap on ``stock_applied``
3. Record one SALIDA per line (``reference_id`` = sale id)
4. Release the order's reservations

If the claim is lost the debit is skipped, so repeating the transition never
double-debits. If any step fails nothing is committed and the sale keeps its
previous status. A sale found in COMPLETADA with ``stock_applied`` still
false is re-driven through the same path.

Totals are computed once at creation, to the cent, and never recomputed.
"""

import logging
from collections import defaultdict
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Optional, Tuple

from stockledger.core.config import settings
from stockledger.core.errors import InsufficientStockError, InvalidTransition, NotFound, ValidationError
from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.models.sale import SaleStatus
from stockledger.models.stock import MovementType
from stockledger.repositories.interfaces import Store
from stockledger.schemas.sale import (
    SaleCreate,
    SaleItemCreate,
    SaleRecord,
    SalesAnalytics,
    TopProduct,
)
from stockledger.services.reservation_service import ReservationService
from stockledger.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

ALLOWED_TRANSITIONS: Dict[SaleStatus, set] = {
    SaleStatus.PENDIENTE: {SaleStatus.CONFIRMADA, SaleStatus.CANCELADA},
    SaleStatus.CONFIRMADA: {SaleStatus.EN_PROCESO},
    SaleStatus.EN_PROCESO: {SaleStatus.COMPLETADA},
    SaleStatus.COMPLETADA: {SaleStatus.DEVUELTA},
    SaleStatus.CANCELADA: set(),
    SaleStatus.DEVUELTA: set(),
}


def to_cents(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_line_total(quantity: int, unit_price: Decimal, discount: Decimal = Decimal("0")) -> Decimal:
    return to_cents(Decimal(quantity) * to_cents(unit_price) - to_cents(discount))


def calculate_sale_totals(
    items: List[SaleItemCreate],
    discount: Decimal = Decimal("0"),
    tax: Decimal = Decimal("0"),
) -> Tuple[List[Decimal], Decimal, Decimal]:
    """Return ``(line_totals, subtotal, total)``.

    ``line = quantity * unit_price - line_discount``;
    ``subtotal = sum(lines)``; ``total = subtotal - discount + tax``.
    """
    lines = [calculate_line_total(i.quantity, i.unit_price, i.discount) for i in items]
    subtotal = to_cents(sum(lines, Decimal("0")))
    total = to_cents(subtotal - to_cents(discount) + to_cents(tax))
    return lines, subtotal, total


def validate_sale_input(data: SaleCreate) -> None:
    if not data.items:
        raise ValidationError("A sale needs at least one item", field="items")
    for index, item in enumerate(data.items):
        if item.quantity <= 0:
            raise ValidationError(f"Item {index}: quantity must be greater than zero", field="items")
        if item.unit_price < 0:
            raise ValidationError(f"Item {index}: unit_price must not be negative", field="items")
        if item.discount < 0:
            raise ValidationError(f"Item {index}: discount must not be negative", field="items")
        if item.discount > Decimal(item.quantity) * item.unit_price:
            raise ValidationError(f"Item {index}: discount exceeds the line amount", field="items")
    if data.tax < 0:
        raise ValidationError("tax must not be negative", field="tax")
    if data.discount < 0:
        raise ValidationError("discount must not be negative", field="discount")


class SaleService:
    """Sale lifecycle manager."""

    def __init__(
        self,
        store: Store,
        clock: Callable[[], datetime] = utcnow,
        allow_negative: Optional[bool] = None,
    ):
        self.store = store
        self.clock = clock
        self.allow_negative = settings.allow_negative_stock if allow_negative is None else allow_negative
        self.ledger = StockLedgerService(store, clock, allow_negative=self.allow_negative)
        self.reservations = ReservationService(store, clock)

    # ===== CREATE / READ =====

    def create_sale(self, data: SaleCreate, actor: Optional[Actor]) -> SaleRecord:
        actor = require_actor(actor)
        validate_sale_input(data)

        lines, subtotal, total = calculate_sale_totals(data.items, data.discount, data.tax)
        if total < 0:
            raise ValidationError("discount exceeds the sale amount", field="discount")

        now = self.clock()
        items = []
        for item, line_total in zip(data.items, lines):
            product = self.store.products.get(actor.user_id, item.product_id, include_deleted=False)
            if product is None:
                raise NotFound("Product", item.product_id)
            items.append({
                "product_id": item.product_id,
                "product_name": item.product_name or product.name,
                "quantity": item.quantity,
                "unit_price": to_cents(item.unit_price),
                "discount": to_cents(item.discount),
                "total": line_total,
            })

        with self.store.transaction():
            sale = self.store.sales.add(
                {
                    "user_id": actor.user_id,
                    "user_name": actor.display_name,
                    "customer_id": data.customer_id or f"temp-{int(now.timestamp() * 1000)}",
                    "customer_name": data.customer_name,
                    "customer_email": data.customer_email,
                    "customer_phone": data.customer_phone,
                    "subtotal": subtotal,
                    "tax": to_cents(data.tax),
                    "discount": to_cents(data.discount),
                    "total": total,
                    "payment_method": data.payment_method,
                    "status": SaleStatus.PENDIENTE,
                    "notes": data.notes,
                    "stock_applied": False,
                    "created_at": now,
                    "updated_at": now,
                },
                items,
            )

        logger.info("Sale %s created: %s line(s), total %s", sale.id, len(items), total)
        return sale

    def get_sale(self, sale_id: int, actor: Optional[Actor]) -> SaleRecord:
        actor = require_actor(actor)
        sale = self.store.sales.get(actor.user_id, sale_id)
        if sale is None:
            raise NotFound("Sale", sale_id)
        return sale

    def list_sales(
        self,
        actor: Optional[Actor],
        limit: int = 50,
        start_after: Optional[int] = None,
        status: Optional[SaleStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[SaleRecord]:
        actor = require_actor(actor)
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be positive", field="limit")
        return self.store.sales.list(
            actor.user_id, status=status, start=start, end=end, limit=limit, start_after=start_after,
        )

    def get_sales_by_status(self, status: SaleStatus, actor: Optional[Actor]) -> List[SaleRecord]:
        actor = require_actor(actor)
        return self.store.sales.list(actor.user_id, status=SaleStatus(status))

    def get_sales_by_date_range(self, start: datetime, end: datetime, actor: Optional[Actor]) -> List[SaleRecord]:
        actor = require_actor(actor)
        if start > end:
            raise ValidationError("start must not be after end", field="start")
        return self.store.sales.list(actor.user_id, start=start, end=end)

    # ===== STATUS LIFECYCLE =====

    def update_status(
        self,
        sale_id: int,
        status: SaleStatus,
        actor: Optional[Actor],
        notes: Optional[str] = None,
    ) -> SaleRecord:
        actor = require_actor(actor)
        status = SaleStatus(status)
        sale = self.get_sale(sale_id, actor)

        if status == sale.status:
            if status == SaleStatus.COMPLETADA and not sale.stock_applied:
                logger.warning("Sale %s is COMPLETADA without stock applied; re-driving debit", sale_id)
                return self._complete(sale, actor, notes)
            if notes is not None:
                return self.update_notes(sale_id, notes, actor)
            return sale

        if status not in ALLOWED_TRANSITIONS[sale.status]:
            logger.warning("Sale %s: rejected transition %s -> %s", sale_id, sale.status.value, status.value)
            raise InvalidTransition(
                f"Cannot change sale status from {sale.status.value} to {status.value}",
                current=sale.status.value,
                requested=status.value,
            )

        if status == SaleStatus.COMPLETADA:
            return self._complete(sale, actor, notes)

        values = {"status": status, "updated_at": self.clock()}
        if notes is not None:
            values["notes"] = notes
        with self.store.transaction():
            updated = self.store.sales.update(actor.user_id, sale_id, values)
            if status == SaleStatus.CANCELADA:
                self.reservations.release_for_order(str(sale_id), actor)

        logger.info("Sale %s: %s -> %s", sale_id, sale.status.value, status.value)
        return updated

    def _complete(self, sale: SaleRecord, actor: Actor, notes: Optional[str]) -> SaleRecord:
        needed: Dict[int, int] = defaultdict(int)
        for item in sale.items:
            needed[item.product_id] += item.quantity
        order_id = str(sale.id)

        with self.store.transaction():
            for product_id, quantity in needed.items():
                product = self.store.products.get(actor.user_id, product_id, include_deleted=False)
                if product is None:
                    raise NotFound("Product", product_id)
                if self.allow_negative:
                    continue
                held_elsewhere = sum(
                    r.quantity
                    for r in self.reservations.list_live(actor, product_id=product_id)
                    if r.order_id != order_id
                )
                available = max(0, product.stock_available - held_elsewhere)
                if available < quantity:
                    logger.warning(
                        "Sale %s cannot complete: product %s has %s free (%s held by other orders), needs %s",
                        sale.id, product_id, available, held_elsewhere, quantity,
                    )
                    raise InsufficientStockError(product.name, product_id, available, quantity)

            now = self.clock()
            if not self.store.sales.claim_stock_application(actor.user_id, sale.id, now):
                logger.info("Sale %s stock already applied; skipping debit", sale.id)
                return self.get_sale(sale.id, actor)

            for item in sale.items:
                self.ledger.record(
                    item.product_id,
                    MovementType.SALIDA,
                    item.quantity,
                    f"Venta #{sale.id} - {item.product_name}",
                    actor,
                    reference_id=str(sale.id),
                )

            self.reservations.release_for_order(order_id, actor)
            if notes is not None:
                self.store.sales.update(actor.user_id, sale.id, {"notes": notes})
            completed = self.get_sale(sale.id, actor)

        logger.info("Sale %s completed: %s SALIDA movement(s) recorded", sale.id, len(sale.items))
        return completed

    def update_notes(self, sale_id: int, notes: Optional[str], actor: Optional[Actor]) -> SaleRecord:
        """Administrative notes stay editable in every status."""
        actor = require_actor(actor)
        with self.store.transaction():
            if self.store.sales.get(actor.user_id, sale_id) is None:
                raise NotFound("Sale", sale_id)
            return self.store.sales.update(actor.user_id, sale_id, {"notes": notes, "updated_at": self.clock()})

    def delete_sale(self, sale_id: int, actor: Optional[Actor]) -> None:
        """Delete a sale that is still PENDIENTE. No ledger trace is left."""
        actor = require_actor(actor)
        sale = self.get_sale(sale_id, actor)
        if sale.status != SaleStatus.PENDIENTE:
            logger.warning("Refusing to delete sale %s in status %s", sale_id, sale.status.value)
            raise InvalidTransition(
                "Only pending sales can be deleted",
                current=sale.status.value,
            )
        with self.store.transaction():
            if not self.store.sales.delete(actor.user_id, sale_id, SaleStatus.PENDIENTE):
                raise InvalidTransition("Only pending sales can be deleted")
            self.reservations.release_for_order(str(sale_id), actor)
        logger.info("Sale %s deleted", sale_id)

    # ===== ANALYTICS =====

    def get_sales_analytics(
        self,
        actor: Optional[Actor],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[SaleStatus] = None,
        customer_id: Optional[str] = None,
    ) -> SalesAnalytics:
        actor = require_actor(actor)
        if start and end and start > end:
            raise ValidationError("start must not be after end", field="start")
        sales = self.store.sales.list(actor.user_id, start=start, end=end)
        if status is not None:
            sales = [s for s in sales if s.status == SaleStatus(status)]
        if customer_id is not None:
            sales = [s for s in sales if s.customer_id == customer_id]
        return summarize_sales(sales)


def summarize_sales(sales: List[SaleRecord]) -> SalesAnalytics:
    total_revenue = to_cents(sum((s.total for s in sales), Decimal("0")))
    average = to_cents(total_revenue / len(sales)) if sales else Decimal("0.00")

    by_product: Dict[int, Dict] = {}
    by_day: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    by_status: Dict[str, int] = defaultdict(int)
    for sale in sales:
        by_day[sale.created_at.date().isoformat()] += sale.total
        by_status[sale.status.value] += 1
        for item in sale.items:
            entry = by_product.setdefault(
                item.product_id, {"name": item.product_name, "quantity": 0, "revenue": Decimal("0")}
            )
            entry["quantity"] += item.quantity
            entry["revenue"] += item.total

    top = sorted(by_product.items(), key=lambda kv: kv[1]["revenue"], reverse=True)[:10]
    top_products = [
        TopProduct(
            product_id=product_id,
            product_name=entry["name"],
            quantity_sold=entry["quantity"],
            revenue=to_cents(entry["revenue"]),
            percentage=float(entry["revenue"] / total_revenue * 100) if total_revenue > 0 else 0.0,
        )
        for product_id, entry in top
    ]

    return SalesAnalytics(
        total_sales=len(sales),
        total_revenue=total_revenue,
        average_order_value=average,
        total_customers=len({s.customer_id for s in sales}),
        top_products=top_products,
        sales_by_day={day: to_cents(v) for day, v in sorted(by_day.items())},
        sales_by_status=dict(by_status),
    )
