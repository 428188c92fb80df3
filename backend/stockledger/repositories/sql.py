"""SQLAlchemy-backed store.

Repositories share one ``Session``; ``SqlStore.transaction()`` commits on
success and rolls back on any exception. Repository methods only flush.
Connection failures and pool timeouts surface as ``TransientStoreError``
and are never retried here.
"""

import functools
import logging
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel
from sqlalchemy import and_, or_
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from stockledger.core.errors import NotFound, TransientStoreError
from stockledger.models.alert import AlertAcknowledgement, AlertType
from stockledger.models.audit import InventoryAudit
from stockledger.models.product import Product
from stockledger.models.sale import Sale, SaleItem, SaleStatus
from stockledger.models.stock import ProductReservation, StockMovement
from stockledger.schemas.alert import AcknowledgementRecord
from stockledger.schemas.audit import AuditRecord
from stockledger.schemas.product import ProductRecord
from stockledger.schemas.sale import SaleRecord
from stockledger.schemas.stock import MovementRecord, ReservationRecord

logger = logging.getLogger(__name__)


def translate_store_errors(func):
    """Re-raise connection-level failures as ``TransientStoreError``."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (OperationalError, DisconnectionError, PoolTimeoutError) as e:
            logger.error("Store operation %s failed: %s", func.__qualname__, e)
            raise TransientStoreError() from e

    return wrapper


def _column_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten enums and nested models into column-ready values."""
    result = {}
    for key, value in values.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, BaseModel):
            value = value.model_dump(mode="json", exclude_none=True)
        result[key] = value
    return result


def _older_than(model, cursor):
    """Keyset filter for rows strictly older than *cursor* in newest-first order."""
    return or_(
        model.created_at < cursor.created_at,
        and_(model.created_at == cursor.created_at, model.id < cursor.id),
    )


class _SqlRepository:
    def __init__(self, db: Session):
        self.db = db


class SqlProductRepository(_SqlRepository):
    def _query(self, user_id: str, product_id: int):
        return (
            self.db.query(Product)
            .populate_existing()
            .filter(Product.id == product_id, Product.user_id == user_id)
        )

    @translate_store_errors
    def add(self, values: Dict[str, Any]) -> ProductRecord:
        product = Product(**_column_values(values))
        self.db.add(product)
        self.db.flush()
        return ProductRecord.model_validate(product)

    @translate_store_errors
    def get(self, user_id: str, product_id: int, include_deleted: bool = True) -> Optional[ProductRecord]:
        query = self._query(user_id, product_id)
        if not include_deleted:
            query = query.filter(Product.not_deleted())
        product = query.first()
        return ProductRecord.model_validate(product) if product else None

    @translate_store_errors
    def list(self, user_id: str, include_deleted: bool = False) -> List[ProductRecord]:
        query = self.db.query(Product).populate_existing().filter(Product.user_id == user_id)
        if not include_deleted:
            query = query.filter(Product.not_deleted())
        return [ProductRecord.model_validate(p) for p in query.order_by(Product.name, Product.id).all()]

    @translate_store_errors
    def update(self, user_id: str, product_id: int, values: Dict[str, Any]) -> ProductRecord:
        product = self._query(user_id, product_id).first()
        if product is None:
            raise NotFound("Product", product_id)
        for key, value in _column_values(values).items():
            setattr(product, key, value)
        self.db.flush()
        return ProductRecord.model_validate(product)

    @translate_store_errors
    def adjust_stock(
        self, user_id: str, product_id: int, delta: int, entered: int, now: datetime
    ) -> ProductRecord:
        self.db.flush()
        updated = (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.user_id == user_id)
            .update(
                {
                    Product.stock_available: Product.stock_available + delta,
                    Product.quantity: Product.quantity + entered,
                    Product.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        if not updated:
            raise NotFound("Product", product_id)
        return ProductRecord.model_validate(self._query(user_id, product_id).one())


class SqlMovementRepository(_SqlRepository):
    @translate_store_errors
    def add(self, values: Dict[str, Any]) -> MovementRecord:
        movement = StockMovement(**_column_values(values))
        self.db.add(movement)
        self.db.flush()
        return MovementRecord.model_validate(movement)

    @translate_store_errors
    def get(self, user_id: str, movement_id: int) -> Optional[MovementRecord]:
        movement = self.db.query(StockMovement).filter(
            StockMovement.id == movement_id,
            StockMovement.user_id == user_id,
        ).first()
        return MovementRecord.model_validate(movement) if movement else None

    @translate_store_errors
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
        query = self.db.query(StockMovement).filter(StockMovement.user_id == user_id)
        if product_id is not None:
            query = query.filter(StockMovement.product_id == product_id)
        if reference_id is not None:
            query = query.filter(StockMovement.reference_id == reference_id)
        if start is not None:
            query = query.filter(StockMovement.created_at >= start)
        if end is not None:
            query = query.filter(StockMovement.created_at <= end)
        if start_after is not None:
            cursor = self.db.query(StockMovement).filter(
                StockMovement.id == start_after,
                StockMovement.user_id == user_id,
            ).first()
            if cursor is None:
                raise NotFound("StockMovement", start_after)
            query = query.filter(_older_than(StockMovement, cursor))
        query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        if limit is not None:
            query = query.limit(limit)
        return [MovementRecord.model_validate(m) for m in query.all()]


class SqlReservationRepository(_SqlRepository):
    @translate_store_errors
    def add(self, values: Dict[str, Any]) -> ReservationRecord:
        reservation = ProductReservation(**_column_values(values))
        self.db.add(reservation)
        self.db.flush()
        return ReservationRecord.model_validate(reservation)

    def _find(self, user_id: str, reservation_id: int):
        return self.db.query(ProductReservation).filter(
            ProductReservation.id == reservation_id,
            ProductReservation.user_id == user_id,
        ).first()

    @translate_store_errors
    def get(self, user_id: str, reservation_id: int) -> Optional[ReservationRecord]:
        reservation = self._find(user_id, reservation_id)
        return ReservationRecord.model_validate(reservation) if reservation else None

    @translate_store_errors
    def delete(self, user_id: str, reservation_id: int) -> bool:
        reservation = self._find(user_id, reservation_id)
        if reservation is None:
            return False
        self.db.delete(reservation)
        self.db.flush()
        return True

    @translate_store_errors
    def list(
        self,
        user_id: str,
        product_id: Optional[int] = None,
        order_id: Optional[str] = None,
        live_at: Optional[datetime] = None,
    ) -> List[ReservationRecord]:
        query = self.db.query(ProductReservation).filter(ProductReservation.user_id == user_id)
        if product_id is not None:
            query = query.filter(ProductReservation.product_id == product_id)
        if order_id is not None:
            query = query.filter(ProductReservation.order_id == order_id)
        if live_at is not None:
            query = query.filter(or_(
                ProductReservation.expires_at.is_(None),
                ProductReservation.expires_at > live_at,
            ))
        query = query.order_by(ProductReservation.created_at.desc(), ProductReservation.id.desc())
        return [ReservationRecord.model_validate(r) for r in query.all()]


class SqlSaleRepository(_SqlRepository):
    def _query(self, user_id: str, sale_id: int):
        return (
            self.db.query(Sale)
            .populate_existing()
            .filter(Sale.id == sale_id, Sale.user_id == user_id)
        )

    @translate_store_errors
    def add(self, values: Dict[str, Any], items: List[Dict[str, Any]]) -> SaleRecord:
        sale = Sale(**_column_values(values))
        sale.items = [
            SaleItem(position=position, **_column_values(item))
            for position, item in enumerate(items)
        ]
        self.db.add(sale)
        self.db.flush()
        return SaleRecord.model_validate(sale)

    @translate_store_errors
    def get(self, user_id: str, sale_id: int) -> Optional[SaleRecord]:
        sale = self._query(user_id, sale_id).first()
        return SaleRecord.model_validate(sale) if sale else None

    @translate_store_errors
    def list(
        self,
        user_id: str,
        status: Optional[SaleStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        start_after: Optional[int] = None,
    ) -> List[SaleRecord]:
        query = self.db.query(Sale).populate_existing().filter(Sale.user_id == user_id)
        if status is not None:
            query = query.filter(Sale.status == SaleStatus(status).value)
        if start is not None:
            query = query.filter(Sale.created_at >= start)
        if end is not None:
            query = query.filter(Sale.created_at <= end)
        if start_after is not None:
            cursor = self.db.query(Sale).filter(Sale.id == start_after, Sale.user_id == user_id).first()
            if cursor is None:
                raise NotFound("Sale", start_after)
            query = query.filter(_older_than(Sale, cursor))
        query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
        if limit is not None:
            query = query.limit(limit)
        return [SaleRecord.model_validate(s) for s in query.all()]

    @translate_store_errors
    def update(self, user_id: str, sale_id: int, values: Dict[str, Any]) -> SaleRecord:
        sale = self._query(user_id, sale_id).first()
        if sale is None:
            raise NotFound("Sale", sale_id)
        for key, value in _column_values(values).items():
            setattr(sale, key, value)
        self.db.flush()
        return SaleRecord.model_validate(sale)

    @translate_store_errors
    def claim_stock_application(self, user_id: str, sale_id: int, now: datetime) -> bool:
        self.db.flush()
        claimed = (
            self.db.query(Sale)
            .filter(
                Sale.id == sale_id,
                Sale.user_id == user_id,
                Sale.stock_applied.is_(False),
            )
            .update(
                {
                    Sale.stock_applied: True,
                    Sale.status: SaleStatus.COMPLETADA.value,
                    Sale.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        return claimed == 1

    @translate_store_errors
    def delete(self, user_id: str, sale_id: int, expected_status: SaleStatus) -> bool:
        sale = self._query(user_id, sale_id).filter(
            Sale.status == SaleStatus(expected_status).value
        ).first()
        if sale is None:
            return False
        self.db.delete(sale)
        self.db.flush()
        return True


class SqlAuditRepository(_SqlRepository):
    def _find(self, user_id: str, audit_id: int):
        return self.db.query(InventoryAudit).filter(
            InventoryAudit.id == audit_id,
            InventoryAudit.user_id == user_id,
        ).first()

    @translate_store_errors
    def add(self, values: Dict[str, Any]) -> AuditRecord:
        audit = InventoryAudit(**_column_values(values))
        self.db.add(audit)
        self.db.flush()
        return AuditRecord.model_validate(audit)

    @translate_store_errors
    def get(self, user_id: str, audit_id: int) -> Optional[AuditRecord]:
        audit = self._find(user_id, audit_id)
        return AuditRecord.model_validate(audit) if audit else None

    @translate_store_errors
    def list(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        product_id: Optional[int] = None,
    ) -> List[AuditRecord]:
        query = self.db.query(InventoryAudit).filter(InventoryAudit.user_id == user_id)
        if since is not None:
            query = query.filter(InventoryAudit.audit_date >= since)
        if product_id is not None:
            query = query.filter(InventoryAudit.product_id == product_id)
        query = query.order_by(InventoryAudit.audit_date.desc(), InventoryAudit.id.desc())
        return [AuditRecord.model_validate(a) for a in query.all()]

    @translate_store_errors
    def update(self, user_id: str, audit_id: int, values: Dict[str, Any]) -> AuditRecord:
        audit = self._find(user_id, audit_id)
        if audit is None:
            raise NotFound("InventoryAudit", audit_id)
        for key, value in _column_values(values).items():
            setattr(audit, key, value)
        self.db.flush()
        return AuditRecord.model_validate(audit)


class SqlAcknowledgementRepository(_SqlRepository):
    def _find(self, user_id: str, product_id: int, alert_type: AlertType):
        return self.db.query(AlertAcknowledgement).filter(
            AlertAcknowledgement.user_id == user_id,
            AlertAcknowledgement.product_id == product_id,
            AlertAcknowledgement.alert_type == AlertType(alert_type).value,
        ).first()

    @translate_store_errors
    def put(self, values: Dict[str, Any]) -> AcknowledgementRecord:
        columns = _column_values(values)
        ack = self._find(columns["user_id"], columns["product_id"], columns["alert_type"])
        if ack is None:
            ack = AlertAcknowledgement(**columns)
            self.db.add(ack)
        else:
            ack.acknowledged_at = columns["acknowledged_at"]
            ack.acknowledged_by = columns.get("acknowledged_by", "")
        self.db.flush()
        return AcknowledgementRecord.model_validate(ack)

    @translate_store_errors
    def list(self, user_id: str) -> List[AcknowledgementRecord]:
        acks = self.db.query(AlertAcknowledgement).filter(AlertAcknowledgement.user_id == user_id).all()
        return [AcknowledgementRecord.model_validate(a) for a in acks]

    @translate_store_errors
    def delete(self, user_id: str, product_id: int, alert_type: AlertType) -> bool:
        ack = self._find(user_id, product_id, alert_type)
        if ack is None:
            return False
        self.db.delete(ack)
        self.db.flush()
        return True


class SqlStore:
    """``Store`` over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0
        self.products = SqlProductRepository(db)
        self.movements = SqlMovementRepository(db)
        self.reservations = SqlReservationRepository(db)
        self.sales = SqlSaleRepository(db)
        self.audits = SqlAuditRepository(db)
        self.acknowledgements = SqlAcknowledgementRepository(db)

    @translate_store_errors
    def _commit(self) -> None:
        self.db.commit()

    @contextmanager
    def transaction(self) -> Iterator["SqlStore"]:
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self
            self._commit()
        except BaseException:
            self.db.rollback()
            raise
        finally:
            self._depth = 0
