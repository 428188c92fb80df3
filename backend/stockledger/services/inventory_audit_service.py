"""Inventory Audit Service - Reconcile physical counts with stored balances.

A reconciliation is one transaction:
1. Persist the audit (``difference = actual - expected``)
2. Move the balance to the counted quantity through the ledger: the delta
   against the stored balance (not the expected count) is a MERMA when
   stock shrank and an AJUSTE when it grew, referencing the audit. Summing
   the ledger still reproduces the balance after an audit.
3. Stamp ``last_audit_date`` / ``last_audit_count``

Audits whose count differed start as ``pending`` and can be marked
``discrepancy_resolved`` once investigated.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from stockledger.core.errors import InvalidTransition, NotFound, ValidationError
from stockledger.core.identity import Actor, require_actor
from stockledger.db.base import utcnow
from stockledger.models.audit import AuditStatus
from stockledger.models.stock import MovementType
from stockledger.repositories.interfaces import Store
from stockledger.schemas.audit import AuditRecord
from stockledger.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


def audit_reason(audit_id: int, expected: int, actual: int) -> str:
    difference = actual - expected
    return (
        f"Auditoría de inventario #{audit_id}: esperado {expected}, "
        f"contado {actual} (diferencia {difference:+d})"
    )


class InventoryAuditService:
    """Records audits and applies counted stock."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock
        self.ledger = StockLedgerService(store, clock)

    def reconcile(
        self,
        product_id: int,
        expected_count: int,
        actual_count: int,
        actor: Optional[Actor],
        notes: Optional[str] = None,
    ) -> AuditRecord:
        actor = require_actor(actor)
        if expected_count < 0:
            raise ValidationError("expected_count must not be negative", field="expected_count")
        if actual_count < 0:
            raise ValidationError("actual_count must not be negative", field="actual_count")

        difference = actual_count - expected_count
        now = self.clock()

        with self.store.transaction():
            product = self.store.products.get(actor.user_id, product_id, include_deleted=False)
            if product is None:
                raise NotFound("Product", product_id)

            audit = self.store.audits.add({
                "user_id": actor.user_id,
                "user_name": actor.display_name,
                "product_id": product_id,
                "expected_count": expected_count,
                "actual_count": actual_count,
                "difference": difference,
                "audit_date": now,
                "notes": notes,
                "status": AuditStatus.PENDING if difference else AuditStatus.COMPLETED,
                "created_at": now,
                "updated_at": now,
            })

            delta = actual_count - product.stock_available
            if delta:
                movement = self.ledger.record(
                    product_id,
                    MovementType.AJUSTE if delta > 0 else MovementType.MERMA,
                    abs(delta),
                    audit_reason(audit.id, expected_count, actual_count),
                    actor,
                    reference_id=str(audit.id),
                )
                audit = self.store.audits.update(actor.user_id, audit.id, {"movement_id": movement.id})

            self.store.products.update(actor.user_id, product_id, {
                "last_audit_date": now,
                "last_audit_count": actual_count,
                "updated_at": now,
            })

        logger.info(
            "Audit %s for product %s: expected %s, counted %s, difference %s",
            audit.id, product_id, expected_count, actual_count, difference,
        )
        return audit

    def get_audit(self, audit_id: int, actor: Optional[Actor]) -> AuditRecord:
        actor = require_actor(actor)
        audit = self.store.audits.get(actor.user_id, audit_id)
        if audit is None:
            raise NotFound("InventoryAudit", audit_id)
        return audit

    def get_recent_audits(
        self, actor: Optional[Actor], days: int = 30, product_id: Optional[int] = None
    ) -> List[AuditRecord]:
        actor = require_actor(actor)
        if days <= 0:
            raise ValidationError("days must be positive", field="days")
        since = self.clock() - timedelta(days=days)
        return self.store.audits.list(actor.user_id, since=since, product_id=product_id)

    def resolve_discrepancy(
        self, audit_id: int, actor: Optional[Actor], notes: Optional[str] = None
    ) -> AuditRecord:
        """Mark a pending audit as investigated."""
        actor = require_actor(actor)
        audit = self.get_audit(audit_id, actor)
        if audit.status != AuditStatus.PENDING:
            raise InvalidTransition(
                f"Audit {audit_id} is {audit.status.value}; only pending audits can be resolved",
                current=audit.status.value,
                requested=AuditStatus.DISCREPANCY_RESOLVED.value,
            )
        values = {"status": AuditStatus.DISCREPANCY_RESOLVED, "updated_at": self.clock()}
        if notes is not None:
            values["notes"] = notes
        with self.store.transaction():
            audit = self.store.audits.update(actor.user_id, audit_id, values)
        logger.info("Audit %s discrepancy resolved by %s", audit_id, actor.display_name)
        return audit
