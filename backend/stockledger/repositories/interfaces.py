"""Repository protocols.

Services depend on these protocols, never on a concrete backend. Two
implementations exist: ``SqlStore`` over a SQLAlchemy session and
``MemoryStore`` for tests and single-process use. The backend is chosen at
composition time (``stockledger.api.deps.get_store``).

Every method is tenant-scoped: the ``user_id`` argument is part of every
lookup, so a record owned by another user behaves as absent.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from stockledger.models.alert import AlertType
from stockledger.models.sale import SaleStatus
from stockledger.schemas.alert import AcknowledgementRecord
from stockledger.schemas.audit import AuditRecord
from stockledger.schemas.product import ProductRecord
from stockledger.schemas.sale import SaleRecord
from stockledger.schemas.stock import MovementRecord, ReservationRecord


@runtime_checkable
class ProductRepository(Protocol):
    def add(self, values: Dict[str, Any]) -> ProductRecord:
        ...

    def get(self, user_id: str, product_id: int, include_deleted: bool = True) -> Optional[ProductRecord]:
        ...

    def list(self, user_id: str, include_deleted: bool = False) -> List[ProductRecord]:
        ...

    def update(self, user_id: str, product_id: int, values: Dict[str, Any]) -> ProductRecord:
        """Overwrite the given fields; raises NotFound for an unknown product."""
        ...

    def adjust_stock(
        self, user_id: str, product_id: int, delta: int, entered: int, now: datetime
    ) -> ProductRecord:
        """Atomically add *delta* to ``stock_available`` and *entered* to ``quantity``."""
        ...


@runtime_checkable
class MovementRepository(Protocol):
    def add(self, values: Dict[str, Any]) -> MovementRecord:
        ...

    def get(self, user_id: str, movement_id: int) -> Optional[MovementRecord]:
        ...

    def list(
        self,
        user_id: str,
        product_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        start_after: Optional[int] = None,
        reference_id: Optional[str] = None,
    ) -> List[MovementRecord]:
        """Newest first. ``start_after`` is the id of the last movement already seen."""
        ...


@runtime_checkable
class ReservationRepository(Protocol):
    def add(self, values: Dict[str, Any]) -> ReservationRecord:
        ...

    def get(self, user_id: str, reservation_id: int) -> Optional[ReservationRecord]:
        ...

    def delete(self, user_id: str, reservation_id: int) -> bool:
        ...

    def list(
        self,
        user_id: str,
        product_id: Optional[int] = None,
        order_id: Optional[str] = None,
        live_at: Optional[datetime] = None,
    ) -> List[ReservationRecord]:
        """Newest first; with ``live_at`` only reservations not expired at that instant."""
        ...


@runtime_checkable
class SaleRepository(Protocol):
    def add(self, values: Dict[str, Any], items: List[Dict[str, Any]]) -> SaleRecord:
        ...

    def get(self, user_id: str, sale_id: int) -> Optional[SaleRecord]:
        ...

    def list(
        self,
        user_id: str,
        status: Optional[SaleStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        start_after: Optional[int] = None,
    ) -> List[SaleRecord]:
        ...

    def update(self, user_id: str, sale_id: int, values: Dict[str, Any]) -> SaleRecord:
        ...

    def claim_stock_application(self, user_id: str, sale_id: int, now: datetime) -> bool:
        """Compare-and-swap ``stock_applied`` false -> true and set status COMPLETADA.

        Returns True only for the caller that performed the swap.
        """
        ...

    def delete(self, user_id: str, sale_id: int, expected_status: SaleStatus) -> bool:
        """Delete only while the sale is still in *expected_status*."""
        ...


@runtime_checkable
class AuditRepository(Protocol):
    def add(self, values: Dict[str, Any]) -> AuditRecord:
        ...

    def get(self, user_id: str, audit_id: int) -> Optional[AuditRecord]:
        ...

    def list(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        product_id: Optional[int] = None,
    ) -> List[AuditRecord]:
        ...

    def update(self, user_id: str, audit_id: int, values: Dict[str, Any]) -> AuditRecord:
        ...


@runtime_checkable
class AcknowledgementRepository(Protocol):
    def put(self, values: Dict[str, Any]) -> AcknowledgementRecord:
        """Insert or refresh the acknowledgement for its alert identity."""
        ...

    def list(self, user_id: str) -> List[AcknowledgementRecord]:
        ...

    def delete(self, user_id: str, product_id: int, alert_type: AlertType) -> bool:
        ...


@runtime_checkable
class Store(Protocol):
    """Unit of work bundling every collection.

    ``transaction()`` is all-or-nothing: when the block raises, no write made
    inside it is visible afterwards. Nested blocks join the outermost one.
    """

    products: ProductRepository
    movements: MovementRepository
    reservations: ReservationRepository
    sales: SaleRepository
    audits: AuditRepository
    acknowledgements: AcknowledgementRepository

    def transaction(self) -> AbstractContextManager:
        ...
