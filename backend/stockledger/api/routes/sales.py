"""Sale routes - creation, status lifecycle and analytics.

Completing a sale (PATCH status=COMPLETADA) is the only call that debits
stock; repeating it never debits twice.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from stockledger.api.deps import StoreDep
from stockledger.core.identity import CurrentActor
from stockledger.core.rate_limit import limiter
from stockledger.core.responses import cursor_response
from stockledger.models.sale import SaleStatus
from stockledger.schemas.sale import SaleCreate, SaleRecord, SalesAnalytics, SaleStatusUpdate
from stockledger.services.sale_service import SaleService

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def list_sales(
    request: Request,
    store: StoreDep,
    actor: CurrentActor,
    status: Optional[SaleStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=500),
    start_after: Optional[int] = Query(None, description="Id of the last sale already seen"),
):
    """Sales newest first, one page at a time."""
    sales = SaleService(store).list_sales(
        actor, limit=limit, start_after=start_after, status=status, start=start, end=end,
    )
    return cursor_response(sales, limit)


@router.post("/", response_model=SaleRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_sale(request: Request, data: SaleCreate, store: StoreDep, actor: CurrentActor):
    """Create a PENDIENTE sale; totals are computed here, not taken from the client."""
    return SaleService(store).create_sale(data, actor)


@router.get("/analytics", response_model=SalesAnalytics)
@limiter.limit("30/minute")
def sales_analytics(
    request: Request,
    store: StoreDep,
    actor: CurrentActor,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[SaleStatus] = None,
    customer_id: Optional[str] = None,
):
    return SaleService(store).get_sales_analytics(
        actor, start=start, end=end, status=status, customer_id=customer_id,
    )


@router.get("/{sale_id}", response_model=SaleRecord)
def get_sale(sale_id: int, store: StoreDep, actor: CurrentActor):
    return SaleService(store).get_sale(sale_id, actor)


@router.patch("/{sale_id}/status", response_model=SaleRecord)
@limiter.limit("30/minute")
def update_sale_status(
    request: Request, sale_id: int, data: SaleStatusUpdate, store: StoreDep, actor: CurrentActor
):
    return SaleService(store).update_status(sale_id, data.status, actor, notes=data.notes)


@router.delete("/{sale_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def delete_sale(request: Request, sale_id: int, store: StoreDep, actor: CurrentActor):
    """Only PENDIENTE sales can be deleted."""
    SaleService(store).delete_sale(sale_id, actor)
