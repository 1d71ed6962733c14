"""
Payment job reconciler application

Merchant actions (capture, refund, void) arrive under /orders, gateway
outcomes under /jobs, and the external scheduler drives /cron/run.
"""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reconciler.core.config import settings
from reconciler.api.v1.router import api_router
from reconciler.db.base import dispose_engine

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Durable capture, refund and void jobs with a single-flight cron for retries and re-checks",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

app.include_router(api_router)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    if not settings.DATABASE_URL:
        logger.warning("DATABASE_URL is not set, job and cron endpoints will fail")
    if not (settings.GATEWAY_BASE_URL and settings.GATEWAY_USER_ID and settings.GATEWAY_API_SECRET):
        logger.warning("Gateway credentials are incomplete, jobs cannot be sent")
    logger.info(
        f"Retrying unsent jobs after {settings.NOT_SENT_PERIOD_MINUTES} min, "
        f"re-checking failed jobs after {settings.RECHECK_PERIOD_MINUTES} min"
    )
    if not settings.API_KEY:
        logger.warning("API_KEY is not set, operator endpoints are unauthenticated")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.APP_NAME}")
    await dispose_engine()
