"""API routes."""

from fastapi import APIRouter

from stockledger.api.routes import alerts, analytics, audits, products, sales, stock

api_router = APIRouter()

api_router.include_router(products.router, prefix="/products", tags=["products"])
api_router.include_router(stock.router, prefix="/stock", tags=["stock"])
api_router.include_router(alerts.router, prefix="/alerts", tags=["alerts"])
api_router.include_router(sales.router, prefix="/sales", tags=["sales"])
api_router.include_router(audits.router, prefix="/audits", tags=["audits"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
