"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from functools import lru_cache
from typing import Literal

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from affiliates.config.constants import (
    DEFAULT_COMMISSION_VALUE,
    DEFAULT_COOKIE_DURATION_DAYS,
    DEFAULT_MAX_CLICKS_PER_IP_PER_HOUR,
    DEFAULT_MIN_PAYOUT_CENTS,
    WEBHOOK_TOLERANCE_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (Dramatiq broker and click velocity counters)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Payment provider webhooks
    webhook_secret: str = Field(
        ...,
        min_length=16,
        description="Shared secret used to sign payment webhook payloads",
    )
    webhook_tolerance_seconds: int = Field(
        default=WEBHOOK_TOLERANCE_SECONDS,
        gt=0,
        le=3600,
        description="Maximum age of a signed webhook timestamp",
    )
    webhook_port: int = Field(
        default=8090, ge=1, le=65535, description="Webhook HTTP server port"
    )

    # Affiliate links
    base_url: str = Field(
        ...,
        description="Public base URL used to build affiliate links",
    )

    # Defaults for the campaign created on initialization
    default_commission_type: Literal["percentage", "fixed"] = "percentage"
    default_commission_value: float = Field(
        default=DEFAULT_COMMISSION_VALUE, ge=0
    )
    default_payout_term: Literal[
        "NET-0", "NET-15", "NET-30", "NET-60", "NET-90"
    ] = "NET-30"
    default_cookie_duration_days: int = Field(
        default=DEFAULT_COOKIE_DURATION_DAYS, gt=0, le=365
    )
    default_min_payout_cents: int = Field(
        default=DEFAULT_MIN_PAYOUT_CENTS, ge=0
    )

    # Fraud controls
    max_clicks_per_ip_per_hour: int = Field(
        default=DEFAULT_MAX_CLICKS_PER_IP_PER_HOUR,
        gt=0,
        description="Clicks accepted from one network address per hour",
    )
    click_velocity_backend: Literal["database", "redis"] = "database"
    ip_hash_salt: str = Field(
        default="",
        description="Salt mixed into hashed network addresses",
    )

    # Background jobs
    expire_batch_size: int = Field(default=500, gt=0)
    outbox_batch_size: int = Field(default=100, gt=0)
    outbox_max_attempts: int = Field(default=5, gt=0)

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = "logs/affiliates.log"
    health_check_port: int = Field(
        default=8081, ge=1, le=65535, description="Health check HTTP server port"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(
            ("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")
        ):
            raise ValueError(
                "DATABASE_URL must start with postgresql+asyncpg:// "
                "(or sqlite+aiosqlite:// for local runs)"
            )
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Base URL must be absolute."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("BASE_URL must start with http:// or https://")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_production(self) -> "Settings":
        """Validate production-specific requirements."""
        if self.environment == "production":
            if self.debug:
                raise ValueError(
                    "DEBUG must be False in production environment. "
                    "Set DEBUG=false in your .env file."
                )
            if len(self.webhook_secret) < 32:
                raise ValueError(
                    "WEBHOOK_SECRET must be at least 32 characters in "
                    "production. Generate one with: openssl rand -hex 32"
                )
            if not self.ip_hash_salt:
                logger.warning(
                    "IP_HASH_SALT is empty; hashed network addresses are "
                    "guessable. Set a random salt in .env."
                )
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return Settings()
