"""Product routes - catalog CRUD with derived stock."""

from typing import Optional

from fastapi import APIRouter, Query, Request, status

from stockledger.api.deps import StoreDep
from stockledger.core.identity import CurrentActor
from stockledger.core.rate_limit import limiter
from stockledger.core.responses import list_response
from stockledger.schemas.product import ProductCreate, ProductRecord, ProductUpdate, ProductWithStock
from stockledger.services.availability_service import AvailabilityService
from stockledger.services.product_service import ProductService

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def list_products(
    request: Request,
    store: StoreDep,
    actor: CurrentActor,
    search: Optional[str] = Query(None, description="Filter by name or brand"),
):
    """List products with sellable stock (stored balance minus live reservations)."""
    products = AvailabilityService(store).list_products_with_stock_info(actor)
    if search:
        needle = search.lower()
        products = [p for p in products if needle in p.name.lower() or needle in p.brand.lower()]
    return list_response(products)


@router.post("/", response_model=ProductRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_product(request: Request, data: ProductCreate, store: StoreDep, actor: CurrentActor):
    return ProductService(store).create_product(data, actor)


@router.get("/{product_id}", response_model=ProductWithStock)
def get_product(product_id: int, store: StoreDep, actor: CurrentActor):
    """Fetch a product by id; soft-deleted products come back with ``is_deleted``."""
    product = ProductService(store).get_product(product_id, actor)
    return AvailabilityService(store).with_stock_info(product, actor)


@router.patch("/{product_id}", response_model=ProductRecord)
@limiter.limit("30/minute")
def update_product(request: Request, product_id: int, data: ProductUpdate, store: StoreDep, actor: CurrentActor):
    return ProductService(store).update_product(product_id, data, actor)


@router.delete("/{product_id}", response_model=ProductRecord)
@limiter.limit("30/minute")
def delete_product(request: Request, product_id: int, store: StoreDep, actor: CurrentActor):
    """Soft delete; ledger history is kept."""
    return ProductService(store).delete_product(product_id, actor)
