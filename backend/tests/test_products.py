"""Tests for the product catalog and soft deletion."""

from decimal import Decimal

import pytest

from stockledger.core.errors import NotFound, ValidationError
from stockledger.models.stock import MovementType
from stockledger.schemas.product import ProductCreate, ProductUpdate
from stockledger.services.product_service import INITIAL_STOCK_REASON, ProductService
from stockledger.services.reservation_service import ReservationService
from stockledger.services.stock_ledger_service import StockLedgerService


@pytest.fixture
def products(store, clock):
    return ProductService(store, clock)


class TestCreateProduct:
    def test_opening_stock_goes_through_ledger(self, products, actor, store):
        product = products.create_product(
            ProductCreate(name="  Harina  ", unit_price=Decimal("2.10"), quantity=25), actor,
        )
        assert product.name == "Harina"
        assert product.stock_available == 25
        assert product.quantity == 25

        movements = store.movements.list(actor.user_id, product_id=product.id)
        assert len(movements) == 1
        assert movements[0].type == MovementType.ENTRADA
        assert movements[0].amount == 25
        assert movements[0].reason == INITIAL_STOCK_REASON

    def test_stock_available_overrides_quantity(self, products, actor):
        product = products.create_product(ProductCreate(name="Sal", quantity=10, stock_available=4), actor)
        assert product.stock_available == 4

    def test_no_opening_movement_for_empty_product(self, products, actor, store):
        product = products.create_product(ProductCreate(name="Pimienta"), actor)
        assert store.movements.list(actor.user_id, product_id=product.id) == []

    def test_min_above_max_rejected(self, products, actor):
        with pytest.raises(ValidationError):
            products.create_product(ProductCreate(name="Sal", min_stock=10, max_stock=5), actor)


class TestUpdateProduct:
    def test_partial_update(self, products, make_product, actor):
        product = make_product(name="Aceite", stock=3)
        updated = products.update_product(product.id, ProductUpdate(min_stock=2, brand="Oliva"), actor)
        assert updated.min_stock == 2
        assert updated.brand == "Oliva"
        assert updated.stock_available == 3

    def test_thresholds_checked_against_stored_values(self, products, make_product, actor):
        product = make_product(stock=3, max_stock=10)
        with pytest.raises(ValidationError):
            products.update_product(product.id, ProductUpdate(min_stock=11), actor)


class TestSoftDelete:
    def test_deleted_product_is_a_tombstone(self, products, make_product, actor, store, clock):
        product = make_product(stock=5)
        ReservationService(store, clock).reserve(product.id, 2, "order-1", "", actor)

        products.delete_product(product.id, actor)

        tombstone = products.get_product(product.id, actor)
        assert tombstone.is_deleted is True
        assert tombstone.deleted_at == clock.now
        assert products.list_products(actor) == []
        assert [p.id for p in products.list_products(actor, include_deleted=True)] == [product.id]
        assert store.reservations.list(actor.user_id, product_id=product.id) == []
        # History is kept
        assert len(store.movements.list(actor.user_id, product_id=product.id)) == 1

    def test_writes_against_deleted_product_fail(self, products, make_product, actor, store, clock):
        product = make_product(stock=5)
        products.delete_product(product.id, actor)
        with pytest.raises(NotFound):
            StockLedgerService(store, clock).record(product.id, MovementType.ENTRADA, 1, "Compra", actor)
        with pytest.raises(NotFound):
            products.update_product(product.id, ProductUpdate(name="Otro"), actor)
        with pytest.raises(NotFound):
            products.delete_product(product.id, actor)
