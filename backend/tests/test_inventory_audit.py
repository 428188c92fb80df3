"""Tests for inventory audit reconciliation."""

import pytest

from stockledger.core.errors import InvalidTransition, NotFound, ValidationError
from stockledger.models.audit import AuditStatus
from stockledger.models.stock import MovementType
from stockledger.services.inventory_audit_service import InventoryAuditService, audit_reason


@pytest.fixture
def audits(store, clock):
    return InventoryAuditService(store, clock)


class TestReconcile:
    def test_round_trip(self, audits, make_product, actor, store, clock):
        product = make_product(stock=20)
        audit = audits.reconcile(product.id, 20, 17, actor, notes="Conteo semanal")

        assert audit.difference == -3
        assert audit.status == AuditStatus.PENDING
        stored = store.products.get(actor.user_id, product.id)
        assert stored.stock_available == 17
        assert stored.last_audit_count == 17
        assert stored.last_audit_date == clock.now

    def test_emits_compensating_adjustment(self, audits, make_product, actor, store):
        product = make_product(stock=20)
        audit = audits.reconcile(product.id, 20, 17, actor)

        movements = store.movements.list(actor.user_id, reference_id=str(audit.id))
        assert len(movements) == 1
        adjustment = movements[0]
        assert adjustment.type == MovementType.MERMA
        assert adjustment.amount == -3
        assert adjustment.reason == audit_reason(audit.id, 20, 17)
        assert "(diferencia -3)" in adjustment.reason
        assert audit.movement_id == adjustment.id
        assert store.products.get(actor.user_id, product.id).stock_available == 17

    def test_matching_count_completes_without_movement(self, audits, make_product, actor, store):
        product = make_product(stock=12)
        audit = audits.reconcile(product.id, 12, 12, actor)
        assert audit.status == AuditStatus.COMPLETED
        assert audit.movement_id is None
        assert store.movements.list(actor.user_id, reference_id=str(audit.id)) == []

    def test_surplus_count(self, audits, make_product, actor, store):
        product = make_product(stock=5)
        audit = audits.reconcile(product.id, 5, 9, actor)
        assert audit.difference == 4
        assert store.products.get(actor.user_id, product.id).stock_available == 9
        [adjustment] = store.movements.list(actor.user_id, reference_id=str(audit.id))
        assert adjustment.type == MovementType.AJUSTE
        assert adjustment.amount == 4

    def test_entry_follows_stored_balance_not_expected_count(self, audits, make_product, actor, store):
        product = make_product(stock=20)
        audit = audits.reconcile(product.id, 18, 17, actor)

        assert audit.difference == -1
        [shrink] = store.movements.list(actor.user_id, reference_id=str(audit.id))
        assert shrink.type == MovementType.MERMA
        assert shrink.amount == -3
        assert "(diferencia -1)" in shrink.reason

    def test_count_matching_stored_balance_records_no_entry(self, audits, make_product, actor, store):
        product = make_product(stock=20)
        audit = audits.reconcile(product.id, 22, 20, actor)

        assert audit.status == AuditStatus.PENDING
        assert audit.movement_id is None
        assert store.movements.list(actor.user_id, reference_id=str(audit.id)) == []

    def test_ledger_sum_matches_balance_after_audits(self, audits, make_product, actor, store):
        product = make_product(stock=20)
        audits.reconcile(product.id, 20, 17, actor)
        audits.reconcile(product.id, 17, 25, actor)

        movements = store.movements.list(actor.user_id, product_id=product.id)
        assert sum(m.amount for m in movements) == 25
        assert store.products.get(actor.user_id, product.id).stock_available == 25

    def test_negative_counts_rejected(self, audits, make_product, actor):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            audits.reconcile(product.id, 5, -1, actor)

    def test_unknown_product(self, audits, actor):
        with pytest.raises(NotFound):
            audits.reconcile(404, 1, 1, actor)


class TestQueriesAndResolution:
    def test_recent_audits_window(self, audits, make_product, actor, clock):
        product = make_product(stock=5)
        old = audits.reconcile(product.id, 5, 4, actor)
        clock.advance(days=40)
        recent = audits.reconcile(product.id, 4, 4, actor)

        assert [a.id for a in audits.get_recent_audits(actor)] == [recent.id]
        assert {a.id for a in audits.get_recent_audits(actor, days=60)} == {old.id, recent.id}

    def test_recent_audits_by_product(self, audits, make_product, actor):
        coffee = make_product(name="Café", stock=5)
        tea = make_product(name="Té", stock=5)
        audits.reconcile(coffee.id, 5, 5, actor)
        tea_audit = audits.reconcile(tea.id, 5, 3, actor)
        assert [a.id for a in audits.get_recent_audits(actor, product_id=tea.id)] == [tea_audit.id]

    def test_resolve_pending(self, audits, make_product, actor):
        product = make_product(stock=5)
        audit = audits.reconcile(product.id, 5, 2, actor)
        resolved = audits.resolve_discrepancy(audit.id, actor, notes="Robo reportado")
        assert resolved.status == AuditStatus.DISCREPANCY_RESOLVED
        assert resolved.notes == "Robo reportado"

    def test_resolve_rejects_non_pending(self, audits, make_product, actor):
        product = make_product(stock=5)
        audit = audits.reconcile(product.id, 5, 5, actor)
        with pytest.raises(InvalidTransition):
            audits.resolve_discrepancy(audit.id, actor)
