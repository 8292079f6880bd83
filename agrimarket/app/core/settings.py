"""
Application settings with validation using pydantic-settings.
Validates all required environment variables at startup.
"""
import socket
from decimal import Decimal
from urllib.parse import quote_plus
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _resolve_db_host(host: str) -> str:
    """Resolve DB host to IP so asyncpg avoids getaddrinfo in asyncio context (e.g. in Docker)."""
    if not host or host in ("localhost", "127.0.0.1"):
        return host
    try:
        return socket.gethostbyname(host)
    except socket.gaierror:
        return host


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    DB_USER: str = Field(..., description="PostgreSQL username")
    DB_PASSWORD: str = Field(..., description="PostgreSQL password")
    DB_NAME: str = Field(..., description="PostgreSQL database name")
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: str = Field(default="5432", description="PostgreSQL port")
    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides DB_* (e.g. sqlite+aiosqlite:///./agrimarket.db)",
    )

    # Database pool configuration
    DB_POOL_SIZE: int = Field(default=20, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(default=40, description="Database max overflow connections")
    DB_POOL_RECYCLE: int = Field(default=3600, description="Database connection recycle time (seconds)")

    # Security configuration
    JWT_SECRET: Optional[str] = Field(default=None, description="Secret for user access tokens (required in production)")
    ADMIN_SECRET: Optional[str] = Field(default=None, description="Admin token for maintenance endpoints (required in production)")

    # CORS configuration
    ALLOWED_ORIGINS: str = Field(default="", description="Comma-separated list of allowed CORS origins")

    # Environment
    ENVIRONMENT: str = Field(default="production", description="Environment: development or production")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Pricing
    DELIVERY_FEE_PICKUP: Decimal = Field(default=Decimal("0"), description="Fee for pickup orders")
    DELIVERY_FEE_DELIVERY: Decimal = Field(default=Decimal("5"), description="Fee for local delivery")
    DELIVERY_FEE_SHIPPING: Decimal = Field(default=Decimal("10"), description="Fee for shipping")

    # Messaging
    MESSAGE_PREVIEW_LENGTH: int = Field(default=100, ge=1, description="Max characters kept in conversation preview")

    # Lock contention retry
    RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1, description="Attempts for operations hitting deadlocks / lock timeouts")
    RETRY_BASE_DELAY_MS: int = Field(default=100, ge=0, description="Base backoff delay in milliseconds")
    RETRY_JITTER_MS: int = Field(default=100, ge=0, description="Max random jitter added to each backoff")

    # Maintenance
    CLEANUP_PENDING_ORDER_MAX_AGE_DAYS: int = Field(default=7, ge=1, description="Pending orders older than this are auto-cancelled")
    CLEANUP_CONVERSATION_INACTIVE_DAYS: int = Field(default=180, ge=1, description="Conversations idle longer than this are archived")
    MAINTENANCE_HOUR_UTC: int = Field(default=3, ge=0, le=23, description="Hour (UTC) of the daily maintenance run")
    INTEGRITY_TOTAL_EPSILON: Decimal = Field(default=Decimal("0.01"), description="Tolerance for order total checks")

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        if v not in ("development", "production"):
            raise ValueError("ENVIRONMENT must be 'development' or 'production'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    def validate_production_settings(self) -> list[str]:
        """
        Validate that all required settings are present in production.
        Returns list of missing settings.
        """
        errors = []

        if self.ENVIRONMENT == "production":
            if not self.JWT_SECRET:
                errors.append("JWT_SECRET is required in production")
            if not self.ADMIN_SECRET:
                errors.append("ADMIN_SECRET is required in production")
            if not self.ALLOWED_ORIGINS:
                errors.append("ALLOWED_ORIGINS is required in production")

        return errors

    @property
    def db_url(self) -> str:
        """Get database URL. Resolve host to IP so connections work in Docker/async context."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        host = _resolve_db_host(self.DB_HOST)
        password = quote_plus(self.DB_PASSWORD)
        return f"postgresql+asyncpg://{self.DB_USER}:{password}@{host}:{self.DB_PORT}/{self.DB_NAME}"

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins."""
        if not self.ALLOWED_ORIGINS:
            return []
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def delivery_fees(self) -> dict[str, Decimal]:
        return {
            "pickup": self.DELIVERY_FEE_PICKUP,
            "delivery": self.DELIVERY_FEE_DELIVERY,
            "shipping": self.DELIVERY_FEE_SHIPPING,
        }


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()
        # Validate production settings
        errors = _settings.validate_production_settings()
        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_msg)
    return _settings
