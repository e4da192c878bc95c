"""
Application configuration management
"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Bus Ticketing"
    APP_VERSION: str = "1.0.0"
    APP_ENV: str = "development"
    DEBUG: bool = False
    API_PREFIX: str = "/api/v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    # Base URL the gateway uses to reach this service (notification callbacks)
    PUBLIC_BASE_URL: str = ""

    # Database
    DATABASE_URL: str  # Must be provided via environment

    @field_validator('DATABASE_URL')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if v.startswith('postgresql://'):
            v = v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 40
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600
    DB_ECHO: bool = False

    # Redis (polling cache and checkout throttle)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20

    # Payment gateway (PlaceToPay checkout)
    PLACETOPAY_URL: str = "https://checkout-test.placetopay.ec"
    PLACETOPAY_LOGIN: str = ""
    PLACETOPAY_SECRET_KEY: str = ""
    PLACETOPAY_TIMEOUT_SECONDS: float = 15.0
    PLACETOPAY_LOCALE: str = "es_EC"
    PAYMENT_CURRENCY: str = "USD"
    PAYMENT_SESSION_EXPIRATION_MINUTES: int = 60
    PAYMENT_SESSION_THROTTLE_SECONDS: int = 5

    @field_validator('PLACETOPAY_URL')
    @classmethod
    def strip_api_suffix(cls, v: str) -> str:
        v = v.rstrip("/")
        if v.endswith("/api"):
            v = v[:-len("/api")]
        return v

    # Notification guard
    NOTIFICATION_DEDUP_WINDOW_SECONDS: int = 60
    NOTIFICATION_LOCK_TTL_SECONDS: int = 30
    NOTIFICATION_SWEEP_INTERVAL_SECONDS: int = 600
    NOTIFICATION_LOCK_MAX_ATTEMPTS: int = 10
    NOTIFICATION_LOCK_INTERVAL_MS: int = 500

    # Payment status polling
    STATUS_CHECK_CACHE_TTL_SECONDS: int = 30

    # Tickets
    TICKET_VALIDATION_HISTORY_LIMIT: int = 100

    # CORS, comma-separated
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8080"

    # Monitoring
    PROMETHEUS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def is_testing(self) -> bool:
        return self.APP_ENV == "testing"

    @property
    def gateway_configured(self) -> bool:
        return bool(self.PLACETOPAY_LOGIN and self.PLACETOPAY_SECRET_KEY)


# Create global settings instance
settings = Settings()
