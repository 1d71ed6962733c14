"""
API router
"""

from fastapi import APIRouter
from reconciler.api.v1 import alerts
from reconciler.api.v1 import cron
from reconciler.api.v1 import health
from reconciler.api.v1 import jobs
from reconciler.api.v1 import orders

api_router = APIRouter()

api_router.include_router(cron.router, prefix="/cron", tags=["cron"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(alerts.router, prefix="/alerts", tags=["alerts"])
api_router.include_router(health.router, prefix="/health", tags=["service"])
