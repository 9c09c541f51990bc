"""Application configuration from environment variables."""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Runtime
    environment: str = Field(
        default="development", description="development or production"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./rentpilot.db",
        description="SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Payment gateway (Paystack)
    paystack_secret_key: str = Field(default="", description="Gateway API secret key")
    paystack_webhook_secret: str = Field(
        default="", description="Shared secret for webhook HMAC-SHA512 signatures"
    )
    paystack_base_url: str = Field(
        default="https://api.paystack.co", description="Gateway API base URL"
    )
    gateway_timeout_seconds: float = Field(
        default=10.0, description="Timeout for gateway HTTP calls"
    )
    platform_fee_percent: Decimal = Field(
        default=Decimal("2"), description="Platform cut of online payments, in percent"
    )
    currency: str = Field(default="ZAR", description="Single system currency")

    # Scheduled jobs
    cron_secret: str = Field(default="", description="Bearer token for the rent generation trigger")

    # Proof-of-payment uploads
    upload_dir: str = Field(default="uploads", description="Directory for uploaded documents")
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, description="Max upload size")

    # Links
    app_base_url: str = Field(
        default="http://localhost:3000", description="Public URL used for gateway callbacks"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Server log file")

    # API
    api_title: str = Field(default="RentPilot API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
