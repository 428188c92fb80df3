"""In-process store.

Tables are plain dicts keyed by id and guarded by one re-entrant lock. A
transaction snapshots every table on entry and restores the snapshot when
the block raises. Records are copied on the way in and out so callers never
hold references into the tables.
"""

import copy
import itertools
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from stockledger.core.errors import NotFound
from stockledger.models.alert import AlertType
from stockledger.models.sale import SaleStatus
from stockledger.schemas.alert import AcknowledgementRecord
from stockledger.schemas.audit import AuditRecord
from stockledger.schemas.product import ProductRecord
from stockledger.schemas.sale import SaleRecord
from stockledger.schemas.stock import MovementRecord, ReservationRecord

logger = logging.getLogger(__name__)


def _newest_first(records: list) -> list:
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


class _Table:
    """One collection plus its id sequence."""

    def __init__(self, store: "MemoryStore"):
        self._store = store
        self.rows: Dict[int, Any] = {}
        self._ids = itertools.count(1)

    def next_id(self) -> int:
        return next(self._ids)

    @property
    def lock(self) -> threading.RLock:
        return self._store.lock

    def _owned(self, user_id: str, row_id: int):
        row = self.rows.get(row_id)
        if row is None or row.user_id != user_id:
            return None
        return row


class MemoryProductRepository(_Table):
    def add(self, values: Dict[str, Any]) -> ProductRecord:
        with self.lock:
            record = ProductRecord(id=self.next_id(), **values)
            self.rows[record.id] = record
            return record.model_copy(deep=True)

    def get(self, user_id: str, product_id: int, include_deleted: bool = True) -> Optional[ProductRecord]:
        with self.lock:
            row = self._owned(user_id, product_id)
            if row is None or (row.is_deleted and not include_deleted):
                return None
            return row.model_copy(deep=True)

    def list(self, user_id: str, include_deleted: bool = False) -> List[ProductRecord]:
        with self.lock:
            rows = [
                r for r in self.rows.values()
                if r.user_id == user_id and (include_deleted or not r.is_deleted)
            ]
            return [r.model_copy(deep=True) for r in sorted(rows, key=lambda r: r.name.lower())]

    def update(self, user_id: str, product_id: int, values: Dict[str, Any]) -> ProductRecord:
        with self.lock:
            row = self._owned(user_id, product_id)
            if row is None:
                raise NotFound("Product", product_id)
            updated = ProductRecord.model_validate({**row.model_dump(), **values})
            self.rows[product_id] = updated
            return updated.model_copy(deep=True)

    def adjust_stock(
        self, user_id: str, product_id: int, delta: int, entered: int, now: datetime
    ) -> ProductRecord:
        with self.lock:
            row = self._owned(user_id, product_id)
            if row is None:
                raise NotFound("Product", product_id)
            return self.update(user_id, product_id, {
                "stock_available": row.stock_available + delta,
                "quantity": row.quantity + entered,
                "updated_at": now,
            })


class MemoryMovementRepository(_Table):
    def add(self, values: Dict[str, Any]) -> MovementRecord:
        with self.lock:
            record = MovementRecord(id=self.next_id(), **values)
            self.rows[record.id] = record
            return record.model_copy(deep=True)

    def get(self, user_id: str, movement_id: int) -> Optional[MovementRecord]:
        with self.lock:
            row = self._owned(user_id, movement_id)
            return row.model_copy(deep=True) if row else None

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
        with self.lock:
            rows = [r for r in self.rows.values() if r.user_id == user_id]
            if product_id is not None:
                rows = [r for r in rows if r.product_id == product_id]
            if reference_id is not None:
                rows = [r for r in rows if r.reference_id == reference_id]
            if start is not None:
                rows = [r for r in rows if r.created_at >= start]
            if end is not None:
                rows = [r for r in rows if r.created_at <= end]
            if start_after is not None:
                cursor = self._owned(user_id, start_after)
                if cursor is None:
                    raise NotFound("StockMovement", start_after)
                rows = [r for r in rows if (r.created_at, r.id) < (cursor.created_at, cursor.id)]
            rows = _newest_first(rows)
            if limit is not None:
                rows = rows[:limit]
            return [r.model_copy(deep=True) for r in rows]


class MemoryReservationRepository(_Table):
    def add(self, values: Dict[str, Any]) -> ReservationRecord:
        with self.lock:
            record = ReservationRecord(id=self.next_id(), **values)
            self.rows[record.id] = record
            return record.model_copy(deep=True)

    def get(self, user_id: str, reservation_id: int) -> Optional[ReservationRecord]:
        with self.lock:
            row = self._owned(user_id, reservation_id)
            return row.model_copy(deep=True) if row else None

    def delete(self, user_id: str, reservation_id: int) -> bool:
        with self.lock:
            if self._owned(user_id, reservation_id) is None:
                return False
            del self.rows[reservation_id]
            return True

    def list(
        self,
        user_id: str,
        product_id: Optional[int] = None,
        order_id: Optional[str] = None,
        live_at: Optional[datetime] = None,
    ) -> List[ReservationRecord]:
        with self.lock:
            rows = [r for r in self.rows.values() if r.user_id == user_id]
            if product_id is not None:
                rows = [r for r in rows if r.product_id == product_id]
            if order_id is not None:
                rows = [r for r in rows if r.order_id == order_id]
            if live_at is not None:
                rows = [r for r in rows if r.is_live(live_at)]
            return [r.model_copy(deep=True) for r in _newest_first(rows)]


class MemorySaleRepository(_Table):
    def add(self, values: Dict[str, Any], items: List[Dict[str, Any]]) -> SaleRecord:
        with self.lock:
            record = SaleRecord(id=self.next_id(), items=items, **values)
            self.rows[record.id] = record
            return record.model_copy(deep=True)

    def get(self, user_id: str, sale_id: int) -> Optional[SaleRecord]:
        with self.lock:
            row = self._owned(user_id, sale_id)
            return row.model_copy(deep=True) if row else None

    def list(
        self,
        user_id: str,
        status: Optional[SaleStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        start_after: Optional[int] = None,
    ) -> List[SaleRecord]:
        with self.lock:
            rows = [r for r in self.rows.values() if r.user_id == user_id]
            if status is not None:
                rows = [r for r in rows if r.status == status]
            if start is not None:
                rows = [r for r in rows if r.created_at >= start]
            if end is not None:
                rows = [r for r in rows if r.created_at <= end]
            if start_after is not None:
                cursor = self._owned(user_id, start_after)
                if cursor is None:
                    raise NotFound("Sale", start_after)
                rows = [r for r in rows if (r.created_at, r.id) < (cursor.created_at, cursor.id)]
            rows = _newest_first(rows)
            if limit is not None:
                rows = rows[:limit]
            return [r.model_copy(deep=True) for r in rows]

    def update(self, user_id: str, sale_id: int, values: Dict[str, Any]) -> SaleRecord:
        with self.lock:
            row = self._owned(user_id, sale_id)
            if row is None:
                raise NotFound("Sale", sale_id)
            updated = SaleRecord.model_validate({**row.model_dump(), **values})
            self.rows[sale_id] = updated
            return updated.model_copy(deep=True)

    def claim_stock_application(self, user_id: str, sale_id: int, now: datetime) -> bool:
        with self.lock:
            row = self._owned(user_id, sale_id)
            if row is None or row.stock_applied:
                return False
            self.update(user_id, sale_id, {
                "stock_applied": True,
                "status": SaleStatus.COMPLETADA,
                "updated_at": now,
            })
            return True

    def delete(self, user_id: str, sale_id: int, expected_status: SaleStatus) -> bool:
        with self.lock:
            row = self._owned(user_id, sale_id)
            if row is None or row.status != expected_status:
                return False
            del self.rows[sale_id]
            return True


class MemoryAuditRepository(_Table):
    def add(self, values: Dict[str, Any]) -> AuditRecord:
        with self.lock:
            record = AuditRecord(id=self.next_id(), **values)
            self.rows[record.id] = record
            return record.model_copy(deep=True)

    def get(self, user_id: str, audit_id: int) -> Optional[AuditRecord]:
        with self.lock:
            row = self._owned(user_id, audit_id)
            return row.model_copy(deep=True) if row else None

    def list(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        product_id: Optional[int] = None,
    ) -> List[AuditRecord]:
        with self.lock:
            rows = [r for r in self.rows.values() if r.user_id == user_id]
            if since is not None:
                rows = [r for r in rows if r.audit_date >= since]
            if product_id is not None:
                rows = [r for r in rows if r.product_id == product_id]
            rows.sort(key=lambda r: (r.audit_date, r.id), reverse=True)
            return [r.model_copy(deep=True) for r in rows]

    def update(self, user_id: str, audit_id: int, values: Dict[str, Any]) -> AuditRecord:
        with self.lock:
            row = self._owned(user_id, audit_id)
            if row is None:
                raise NotFound("InventoryAudit", audit_id)
            updated = AuditRecord.model_validate({**row.model_dump(), **values})
            self.rows[audit_id] = updated
            return updated.model_copy(deep=True)


class MemoryAcknowledgementRepository(_Table):
    def _find(self, user_id: str, product_id: int, alert_type: AlertType):
        for row in self.rows.values():
            if row.user_id == user_id and row.product_id == product_id and row.alert_type == alert_type:
                return row
        return None

    def put(self, values: Dict[str, Any]) -> AcknowledgementRecord:
        with self.lock:
            existing = self._find(values["user_id"], values["product_id"], AlertType(values["alert_type"]))
            row_id = existing.id if existing else self.next_id()
            record = AcknowledgementRecord(id=row_id, **values)
            self.rows[row_id] = record
            return record.model_copy(deep=True)

    def list(self, user_id: str) -> List[AcknowledgementRecord]:
        with self.lock:
            return [r.model_copy(deep=True) for r in self.rows.values() if r.user_id == user_id]

    def delete(self, user_id: str, product_id: int, alert_type: AlertType) -> bool:
        with self.lock:
            row = self._find(user_id, product_id, alert_type)
            if row is None:
                return False
            del self.rows[row.id]
            return True


class MemoryStore:
    """Dict-backed ``Store``."""

    def __init__(self):
        self.lock = threading.RLock()
        self._depth = 0
        self.products = MemoryProductRepository(self)
        self.movements = MemoryMovementRepository(self)
        self.reservations = MemoryReservationRepository(self)
        self.sales = MemorySaleRepository(self)
        self.audits = MemoryAuditRepository(self)
        self.acknowledgements = MemoryAcknowledgementRepository(self)

    def _tables(self) -> List[_Table]:
        return [
            self.products, self.movements, self.reservations,
            self.sales, self.audits, self.acknowledgements,
        ]

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        with self.lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = [copy.deepcopy(t.rows) for t in self._tables()]
            self._depth = 1
            try:
                yield self
            except BaseException:
                for table, rows in zip(self._tables(), snapshot):
                    table.rows = rows
                logger.debug("Memory store transaction rolled back")
                raise
            finally:
                self._depth = 0
