"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Stripe Configuration
    stripe_secret_key: str = Field(..., description="Stripe secret API key (sk_test_...)")
    stripe_publishable_key: str = Field(..., description="Stripe publishable key (pk_test_...)")
    stripe_webhook_secret: str = Field(..., description="Stripe webhook signing secret")
    stripe_api_version: str = Field(default="2023-10-16", description="Stripe API version")
    stripe_webhook_tolerance: int = Field(
        default=300, description="Max age of a signed webhook timestamp (seconds)"
    )

    # Mail relay Configuration
    smtp_host: str = Field(default="smtp.gmail.com", description="SMTP relay host")
    smtp_port: int = Field(default=587, description="SMTP relay port")
    smtp_username: str = Field(default="", description="SMTP username")
    smtp_password: str = Field(default="", description="SMTP password")
    smtp_use_ssl: bool = Field(default=False, description="Use implicit TLS (SMTPS)")
    smtp_use_tls: bool = Field(default=True, description="Upgrade with STARTTLS")
    smtp_timeout: int = Field(default=30, description="SMTP socket timeout (seconds)")
    email_from: Optional[str] = Field(
        default=None, description="Sender address (defaults to the SMTP username)"
    )
    email_bcc: Optional[str] = Field(
        default=None, description="Operator address blind-copied on every confirmation"
    )

    # Ledger Configuration
    airtable_api_key: str = Field(default="", description="Airtable personal access token")
    airtable_base_id: str = Field(default="", description="Airtable base identifier")
    airtable_table_name: str = Field(default="Payments", description="Ledger table name")
    airtable_api_url: str = Field(
        default="https://api.airtable.com/v0", description="Airtable REST API root"
    )
    airtable_timeout: float = Field(default=10.0, description="Ledger request timeout (seconds)")

    # Pipeline capabilities
    email_sink_enabled: bool = Field(default=True, description="Send confirmation emails")
    ledger_sink_enabled: bool = Field(default=True, description="Append ledger rows")
    collect_phone: bool = Field(default=False, description="Collect customer phone numbers")
    collect_items: bool = Field(default=True, description="Decode cart items from metadata")
    default_currency: str = Field(
        default="gbp", description="Checkout currency and fallback for webhook payloads"
    )

    # Event de-duplication
    webhook_dedup_enabled: bool = Field(
        default=False, description="Drop repeated deliveries of the same event"
    )
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    webhook_dedup_ttl: int = Field(
        default=86400 * 7, description="How long processed event ids are remembered (seconds)"
    )

    # Application Configuration
    app_name: str = Field(default="checkout-notifier", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=3000, description="API port")
    frontend_url: str = Field(
        default="http://localhost:8080",
        description="Storefront origin (CORS origins, comma-separated; first is used for redirects)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("stripe_secret_key")
    @classmethod
    def validate_stripe_key(cls, v: str) -> str:
        """Validate that Stripe secret key is a test or live key."""
        if not v.startswith("sk_test_") and not v.startswith("sk_live_"):
            raise ValueError(
                "Invalid Stripe secret key format. Must start with 'sk_test_' or 'sk_live_'"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Stripe expects lowercase ISO currency codes."""
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Currency must be 3-letter code")
        return v.lower()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [o.strip().rstrip("/") for o in self.frontend_url.split(",") if o.strip()]

    @property
    def storefront_url(self) -> str:
        """Base URL used for checkout success/cancel redirects."""
        origins = self.get_allowed_origins_list()
        return origins[0] if origins else ""

    @property
    def sender_address(self) -> str:
        return self.email_from or self.smtp_username

    @property
    def operator_address(self) -> str:
        return self.email_bcc or self.sender_address

    @property
    def is_test_mode(self) -> bool:
        """Check if using Stripe test mode."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
