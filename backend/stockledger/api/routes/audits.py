"""Inventory audit routes - physical counts and discrepancy follow-up."""

from typing import Optional

from fastapi import APIRouter, Body, Query, Request, status

from stockledger.api.deps import StoreDep
from stockledger.core.identity import CurrentActor
from stockledger.core.rate_limit import limiter
from stockledger.core.responses import list_response
from stockledger.schemas.audit import AuditCreate, AuditRecord
from stockledger.services.inventory_audit_service import InventoryAuditService

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def list_recent_audits(
    request: Request,
    store: StoreDep,
    actor: CurrentActor,
    days: int = Query(30, ge=1, le=3650),
    product_id: Optional[int] = None,
):
    return list_response(InventoryAuditService(store).get_recent_audits(actor, days=days, product_id=product_id))


@router.post("/", response_model=AuditRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def reconcile(request: Request, data: AuditCreate, store: StoreDep, actor: CurrentActor):
    """Record a count and set the product's stock to the counted quantity."""
    return InventoryAuditService(store).reconcile(
        data.product_id, data.expected_count, data.actual_count, actor, notes=data.notes,
    )


@router.get("/{audit_id}", response_model=AuditRecord)
def get_audit(audit_id: int, store: StoreDep, actor: CurrentActor):
    return InventoryAuditService(store).get_audit(audit_id, actor)


@router.post("/{audit_id}/resolve", response_model=AuditRecord)
@limiter.limit("30/minute")
def resolve_discrepancy(
    request: Request,
    audit_id: int,
    store: StoreDep,
    actor: CurrentActor,
    notes: Optional[str] = Body(None, embed=True),
):
    return InventoryAuditService(store).resolve_discrepancy(audit_id, actor, notes=notes)
