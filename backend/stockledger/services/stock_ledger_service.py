"""Stock Ledger Service - Append-only record of stock-affecting events.

Every change to a product's stored balance goes through ``record``:

1. Validate actor, product and reason
2. Normalize the amount's sign from the movement type
   - ENTRADA / AJUSTE  -> positive
   - SALIDA / MERMA    -> negative
   - TRANSFERENCIA     -> caller's sign (paired out/in legs)
3. Append the movement
4. Apply the signed amount to ``stock_available`` (ENTRADA also grows the
   lifetime ``quantity``; transfer legs net to zero and leave it unchanged)

The ledger itself never refuses a write because of the resulting balance.
The ``process_stock_*`` helpers are the guarded entry points: exits and
losses check derived availability first unless negative stock is allowed.
Movements are never updated or deleted.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from stockledger.core.config import settings
from stockledger.core.errors import InsufficientStockError, NotFound, ValidationError
from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.models.stock import MovementType
from stockledger.repositories.interfaces import Store
from stockledger.schemas.stock import MovementRecord
from stockledger.services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

POSITIVE_TYPES = {MovementType.ENTRADA, MovementType.AJUSTE}
NEGATIVE_TYPES = {MovementType.SALIDA, MovementType.MERMA}


def normalize_amount(movement_type: MovementType, amount: int) -> int:
    """Return *amount* with the sign its movement type requires."""
    movement_type = MovementType(movement_type)
    if movement_type in POSITIVE_TYPES:
        return abs(amount)
    if movement_type in NEGATIVE_TYPES:
        return -abs(amount)
    return amount


class StockLedgerService:
    """Records and queries stock movements."""

    def __init__(
        self,
        store: Store,
        clock: Callable[[], datetime] = utcnow,
        allow_negative: Optional[bool] = None,
    ):
        self.store = store
        self.clock = clock
        self.allow_negative = settings.allow_negative_stock if allow_negative is None else allow_negative
        self.availability = AvailabilityService(store, clock)

    # ===== CORE: APPEND =====

    def record(
        self,
        product_id: int,
        movement_type: MovementType,
        amount: int,
        reason: str,
        actor: Optional[Actor],
        reference_id: Optional[str] = None,
        location: Optional[str] = None,
        apply_to_balance: bool = True,
    ) -> MovementRecord:
        """Append one movement and apply it to the product's stored balance.

        ``apply_to_balance=False`` appends the movement only; used by audits,
        which set the balance directly and log the correction alongside.
        """
        actor = require_actor(actor)
        movement_type = MovementType(movement_type)
        if not reason or not reason.strip():
            raise ValidationError("A reason is required for every stock movement", field="reason")

        signed = normalize_amount(movement_type, amount)
        now = self.clock()

        with self.store.transaction():
            product = self.store.products.get(actor.user_id, product_id, include_deleted=False)
            if product is None:
                raise NotFound("Product", product_id)

            movement = self.store.movements.add({
                "user_id": actor.user_id,
                "user_name": actor.display_name,
                "product_id": product_id,
                "type": movement_type,
                "amount": signed,
                "reason": reason.strip(),
                "reference_id": reference_id,
                "location": location,
                "created_at": now,
                "updated_at": now,
            })

            if apply_to_balance and movement_type != MovementType.TRANSFERENCIA:
                entered = signed if movement_type == MovementType.ENTRADA else 0
                self.store.products.adjust_stock(actor.user_id, product_id, signed, entered, now)

        logger.info(
            "Stock movement %s recorded: product=%s type=%s amount=%s ref=%s",
            movement.id, product_id, movement_type.value, signed, reference_id,
        )
        return movement

    def query(
        self,
        actor: Optional[Actor],
        product_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        start_after: Optional[int] = None,
        reference_id: Optional[str] = None,
    ) -> List[MovementRecord]:
        """Movements newest first, scoped to the actor's tenant."""
        actor = require_actor(actor)
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be positive", field="limit")
        if start and end and start > end:
            raise ValidationError("start must not be after end", field="start")
        return self.store.movements.list(
            actor.user_id,
            product_id=product_id,
            start=start,
            end=end,
            limit=limit,
            start_after=start_after,
            reference_id=reference_id,
        )

    # ===== DIRECT STOCK OPERATIONS =====

    def _check_available(self, product_id: int, quantity: int, actor: Actor) -> None:
        if self.allow_negative:
            return
        product = self.availability.get_product_with_stock_info(product_id, actor)
        if product.stock_available < quantity:
            logger.warning(
                "Refusing exit of %s from product %s: only %s available",
                quantity, product_id, product.stock_available,
            )
            raise InsufficientStockError(product.name, product_id, product.stock_available, quantity)

    @staticmethod
    def _require_positive(quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="quantity")

    def process_stock_entry(
        self, product_id: int, quantity: int, reason: str, actor: Optional[Actor],
        reference_id: Optional[str] = None, location: Optional[str] = None,
    ) -> MovementRecord:
        self._require_positive(quantity)
        return self.record(product_id, MovementType.ENTRADA, quantity, reason, actor, reference_id, location)

    def process_stock_exit(
        self, product_id: int, quantity: int, reason: str, actor: Optional[Actor],
        reference_id: Optional[str] = None, location: Optional[str] = None,
    ) -> MovementRecord:
        actor = require_actor(actor)
        self._require_positive(quantity)
        with self.store.transaction():
            self._check_available(product_id, quantity, actor)
            return self.record(product_id, MovementType.SALIDA, quantity, reason, actor, reference_id, location)

    def process_stock_adjustment(
        self, product_id: int, quantity: int, reason: str, actor: Optional[Actor],
        reference_id: Optional[str] = None, location: Optional[str] = None,
    ) -> MovementRecord:
        """Upward correction. Downward corrections are losses or audits."""
        self._require_positive(quantity)
        return self.record(product_id, MovementType.AJUSTE, quantity, reason, actor, reference_id, location)

    def process_stock_loss(
        self, product_id: int, quantity: int, reason: str, actor: Optional[Actor],
        reference_id: Optional[str] = None, location: Optional[str] = None,
    ) -> MovementRecord:
        actor = require_actor(actor)
        self._require_positive(quantity)
        with self.store.transaction():
            self._check_available(product_id, quantity, actor)
            return self.record(product_id, MovementType.MERMA, quantity, reason, actor, reference_id, location)

    def process_stock_transfer(
        self,
        product_id: int,
        quantity: int,
        reason: str,
        actor: Optional[Actor],
        from_location: str,
        to_location: str,
        reference_id: Optional[str] = None,
    ) -> Tuple[MovementRecord, MovementRecord]:
        """Record a transfer as an out leg and an in leg that sum to zero."""
        actor = require_actor(actor)
        self._require_positive(quantity)
        if not from_location or not to_location:
            raise ValidationError("Both locations are required for a transfer", field="from_location")
        if from_location == to_location:
            raise ValidationError("Source and destination locations must differ", field="to_location")

        reference_id = reference_id or f"transfer-{uuid.uuid4().hex[:12]}"
        with self.store.transaction():
            out_leg = self.record(
                product_id, MovementType.TRANSFERENCIA, -quantity,
                f"{reason} - Salida de {from_location}", actor,
                reference_id=reference_id, location=from_location,
            )
            in_leg = self.record(
                product_id, MovementType.TRANSFERENCIA, quantity,
                f"{reason} - Entrada a {to_location}", actor,
                reference_id=reference_id, location=to_location,
            )
        return out_leg, in_leg
