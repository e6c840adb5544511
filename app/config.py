"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "settlement-engine"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Postgres
    database_url: str = ""
    db_pool_size: int = 5
    db_max_overflow: int = 10
    # Create tables on startup instead of running Alembic (local development)
    auto_create_tables: bool = False

    # Redis (webhook dedupe + Celery broker)
    redis_url: str = "redis://localhost:6379/0"

    # Razorpay
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""

    # Admin
    admin_api_key: str = ""

    # Browser origins allowed to call the API (checkout frontend)
    cors_origins: List[str] = []

    # Revenue split (percent)
    default_currency: str = "INR"
    platform_fee_percent: Decimal = Decimal("10")
    teacher_share_percent: Decimal = Decimal("70")

    # Minimum settlement (withdrawal) amounts per wallet role
    teacher_min_settlement: Decimal = Decimal("1000")
    referral_partner_min_settlement: Decimal = Decimal("500")
    default_min_settlement: Decimal = Decimal("1000")

    # Notifications (external email/SMS relay)
    notification_webhook_url: str = ""

    # How long a processed webhook event id is remembered
    webhook_event_ttl_seconds: int = 7 * 24 * 3600

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
