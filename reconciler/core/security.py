"""
API key authentication for operator endpoints
"""

from typing import Optional

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from reconciler.core.config import settings

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> Optional[str]:
    """
    Validate the X-API-Key header.
    
    Authorization is disabled when API_KEY is not configured.
    """
    if not settings.API_KEY:
        return None
    if api_key != settings.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return api_key
