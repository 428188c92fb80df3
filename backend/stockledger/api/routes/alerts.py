"""Alert routes - threshold alerts and acknowledgement."""

from fastapi import APIRouter, Request

from stockledger.api.deps import StoreDep
from stockledger.core.identity import CurrentActor
from stockledger.core.rate_limit import limiter
from stockledger.core.responses import list_response
from stockledger.schemas.alert import AcknowledgementRecord
from stockledger.services.stock_alert_service import StockAlertService

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def list_alerts(request: Request, store: StoreDep, actor: CurrentActor, include_acknowledged: bool = True):
    """Alerts recomputed from current stock."""
    return list_response(StockAlertService(store).get_alerts(actor, include_acknowledged=include_acknowledged))


@router.post("/{alert_id}/acknowledge", response_model=AcknowledgementRecord)
@limiter.limit("30/minute")
def acknowledge_alert(request: Request, alert_id: str, store: StoreDep, actor: CurrentActor):
    """Acknowledge until the alert's condition clears."""
    return StockAlertService(store).acknowledge(alert_id, actor)
