"""Analytics routes - forecasts, recommendations, optimization and smart notifications.

All endpoints are read-only and never fail on thin history: they return
empty lists or zero-confidence results instead.
"""

from typing import List, Optional

from fastapi import APIRouter, Query, Request

from stockledger.api.deps import StoreDep
from stockledger.core.identity import CurrentActor
from stockledger.core.rate_limit import limiter
from stockledger.core.responses import list_response
from stockledger.schemas.notification import NotificationStats
from stockledger.services.demand_forecasting_service import DemandForecastingService
from stockledger.services.inventory_optimization_service import InventoryOptimizationService
from stockledger.services.recommendation_service import RecommendationService
from stockledger.services.smart_notification_service import SmartNotificationService

router = APIRouter()


@router.get("/demand/{product_id}")
@limiter.limit("30/minute")
def product_demand(
    request: Request,
    product_id: int,
    store: StoreDep,
    actor: CurrentActor,
    days: Optional[int] = Query(None, ge=1, le=365, description="Forecast horizon in days"),
):
    return DemandForecastingService(store).predict_product_demand(product_id, actor, days=days).to_dict()


@router.get("/sales-forecast")
@limiter.limit("30/minute")
def sales_forecast(
    request: Request,
    store: StoreDep,
    actor: CurrentActor,
    periods: int = Query(7, ge=1, le=90),
):
    forecasts = DemandForecastingService(store).predict_sales(actor, periods=periods)
    return list_response([f.to_dict() for f in forecasts])


@router.get("/seasonal")
@limiter.limit("30/minute")
def seasonal_patterns(request: Request, store: StoreDep, actor: CurrentActor):
    patterns = DemandForecastingService(store).analyze_seasonal_patterns(actor)
    return list_response([p.to_dict() for p in patterns])


@router.get("/pricing/{product_id}")
@limiter.limit("30/minute")
def pricing_suggestion(request: Request, product_id: int, store: StoreDep, actor: CurrentActor):
    return DemandForecastingService(store).predict_optimal_pricing(product_id, actor).to_dict()


@router.get("/dashboard")
@limiter.limit("30/minute")
def analytics_dashboard(request: Request, store: StoreDep, actor: CurrentActor):
    return DemandForecastingService(store).get_analytics_dashboard(actor)


@router.get("/recommendations")
@limiter.limit("30/minute")
def recommendations(
    request: Request,
    store: StoreDep,
    actor: CurrentActor,
    product_id: Optional[List[int]] = Query(None, description="Products already in the basket"),
    customer_id: Optional[str] = Query(None, max_length=100),
    limit: int = Query(5, ge=1, le=50),
):
    recs = RecommendationService(store).get_recommendations(
        actor, current_products=product_id, customer_id=customer_id, limit=limit,
    )
    return list_response([r.to_dict() for r in recs])


@router.get("/insights/{product_id}")
@limiter.limit("30/minute")
def product_insights(request: Request, product_id: int, store: StoreDep, actor: CurrentActor):
    return RecommendationService(store).get_product_insights(product_id, actor).to_dict()


@router.get("/optimization")
@limiter.limit("10/minute")
def optimization_report(request: Request, store: StoreDep, actor: CurrentActor):
    return InventoryOptimizationService(store).generate_report(actor).to_dict()


@router.get("/notifications")
@limiter.limit("60/minute")
def notifications(request: Request, store: StoreDep, actor: CurrentActor):
    return list_response(SmartNotificationService(store).generate(actor))


@router.get("/notifications/stats", response_model=NotificationStats)
@limiter.limit("60/minute")
def notification_stats(request: Request, store: StoreDep, actor: CurrentActor):
    return SmartNotificationService(store).get_notification_stats(actor)
