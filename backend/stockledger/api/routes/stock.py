"""Stock routes - movement ledger, direct stock operations and reservations.

Business Logic Flows:
- Entry / adjustment: positive movement added to the stored balance
- Exit / loss: negative movement, refused when it exceeds sellable stock
- Transfer: TRANSFERENCIA out of the source plus TRANSFERENCIA into the
  destination (paired movements sharing a reference id, balance unchanged)
- Reservation: hold stock for an in-progress order until it expires or is released
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from stockledger.api.deps import StoreDep
from stockledger.core.identity import CurrentActor
from stockledger.core.rate_limit import limiter
from stockledger.core.responses import cursor_response, list_response
from stockledger.schemas.stock import (
    MovementCreate,
    MovementRecord,
    ReservationCreate,
    ReservationRecord,
    StockOperationRequest,
    TransferRequest,
)
from stockledger.services.reservation_service import ReservationService
from stockledger.services.stock_ledger_service import StockLedgerService

router = APIRouter()


# ==================== MOVEMENTS ====================

@router.get("/movements")
@limiter.limit("60/minute")
def list_movements(
    request: Request,
    store: StoreDep,
    actor: CurrentActor,
    product_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    reference_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    start_after: Optional[int] = Query(None, description="Id of the last movement already seen"),
):
    """Movements newest first, one page at a time."""
    movements = StockLedgerService(store).query(
        actor,
        product_id=product_id,
        start=start,
        end=end,
        limit=limit,
        start_after=start_after,
        reference_id=reference_id,
    )
    return cursor_response(movements, limit)


@router.post("/movements", response_model=MovementRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def record_movement(request: Request, data: MovementCreate, store: StoreDep, actor: CurrentActor):
    """Append a raw movement; the amount's sign is normalized by type."""
    return StockLedgerService(store).record(
        data.product_id,
        data.type,
        data.amount,
        data.reason,
        actor,
        reference_id=data.reference_id,
        location=data.location,
    )


# ==================== DIRECT OPERATIONS ====================

@router.post("/entries", response_model=MovementRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def stock_entry(request: Request, data: StockOperationRequest, store: StoreDep, actor: CurrentActor):
    return StockLedgerService(store).process_stock_entry(
        data.product_id, data.quantity, data.reason, actor, reference_id=data.reference_id,
    )


@router.post("/exits", response_model=MovementRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def stock_exit(request: Request, data: StockOperationRequest, store: StoreDep, actor: CurrentActor):
    return StockLedgerService(store).process_stock_exit(
        data.product_id, data.quantity, data.reason, actor, reference_id=data.reference_id,
    )


@router.post("/adjustments", response_model=MovementRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def stock_adjustment(request: Request, data: StockOperationRequest, store: StoreDep, actor: CurrentActor):
    return StockLedgerService(store).process_stock_adjustment(
        data.product_id, data.quantity, data.reason, actor, reference_id=data.reference_id,
    )


@router.post("/losses", response_model=MovementRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def stock_loss(request: Request, data: StockOperationRequest, store: StoreDep, actor: CurrentActor):
    return StockLedgerService(store).process_stock_loss(
        data.product_id, data.quantity, data.reason, actor, reference_id=data.reference_id,
    )


@router.post("/transfers", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def stock_transfer(request: Request, data: TransferRequest, store: StoreDep, actor: CurrentActor):
    """Returns both legs of the transfer, out leg first."""
    out_leg, in_leg = StockLedgerService(store).process_stock_transfer(
        data.product_id,
        data.quantity,
        data.reason,
        actor,
        from_location=data.from_location,
        to_location=data.to_location,
    )
    return list_response([out_leg, in_leg])


# ==================== RESERVATIONS ====================

@router.get("/reservations")
@limiter.limit("60/minute")
def list_reservations(request: Request, store: StoreDep, actor: CurrentActor, product_id: Optional[int] = None):
    """Live (unexpired) reservations."""
    return list_response(ReservationService(store).list_live(actor, product_id=product_id))


@router.post("/reservations", response_model=ReservationRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_reservation(request: Request, data: ReservationCreate, store: StoreDep, actor: CurrentActor):
    return ReservationService(store).reserve(
        data.product_id,
        data.quantity,
        data.order_id,
        data.reason,
        actor,
        customer_name=data.customer_name,
        expires_at=data.expires_at,
    )


@router.delete("/reservations/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def cancel_reservation(request: Request, reservation_id: int, store: StoreDep, actor: CurrentActor):
    """Cancelling a reservation that is already gone is a no-op."""
    ReservationService(store).cancel(reservation_id, actor)
