"""
Health check endpoint
"""

from fastapi import APIRouter
from reconciler.core.config import settings
from reconciler.services.gateway_client import HttpGatewayClient

router = APIRouter()


@router.get("")
async def health():
    """
    Health check endpoint.
    """
    gateway = HttpGatewayClient()
    
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "database_configured": bool(settings.DATABASE_URL),
        "gateway_configured": gateway.is_configured(),
        "gateway_url_configured": bool(settings.GATEWAY_BASE_URL),
        "api_key_required": bool(settings.API_KEY),
    }
