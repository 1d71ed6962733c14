"""
Application configuration settings
"""

from pydantic_settings import BaseSettings
from typing import Optional, List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    
    # Application
    APP_NAME: str = "Payment Job Reconciler"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    
    # Payment gateway
    GATEWAY_BASE_URL: Optional[str] = None
    GATEWAY_USER_ID: Optional[str] = None
    GATEWAY_API_SECRET: Optional[str] = None
    GATEWAY_TIMEOUT: float = 30.0
    
    # Failure reasons recorded locally are keyed by this language
    FALLBACK_LANGUAGE: str = "en-US"
    
    # Job retry windows
    NOT_SENT_PERIOD_MINUTES: int = 10
    RECHECK_PERIOD_MINUTES: int = 10
    
    # Cron claim table
    CRON_SCHEDULE_DELAY_MINUTES: int = 1
    CRON_TIMEOUT_MINUTES: int = 5
    CRON_RETENTION_DAYS: int = 1
    
    # CORS
    CORS_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]
    
    # Database
    DATABASE_URL: Optional[str] = None
    
    # Operator endpoints require X-API-Key when set
    API_KEY: Optional[str] = None
    
    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
