"""Application configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="fastbite-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    max_request_body_size: int = Field(default=1_048_576, description="Maximum request body size in bytes")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")

    # Paystack
    paystack_secret_key: str = Field(default="", description="Paystack secret API key")
    paystack_public_key: str = Field(default="", description="Paystack public key (for frontend)")
    paystack_base_url: str = Field(default="https://api.paystack.co", description="Paystack API base URL")
    paystack_currency: str = Field(default="ZAR", description="Currency code sent with every transaction")
    paystack_timeout_seconds: float = Field(default=10.0, gt=0, description="Timeout for Paystack API calls")
    paystack_verify_max_attempts: int = Field(default=3, ge=1, description="Attempts for read-only Paystack calls")

    # Payment webhooks
    payment_webhook_scheme: Literal["hmac-sha512", "svix"] = Field(
        default="hmac-sha512",
        description="Signing scheme of inbound payment webhooks",
    )
    payment_webhook_secret: str = Field(
        default="",
        description="HMAC secret for payment webhooks (defaults to the Paystack secret key)",
    )
    svix_webhook_secret: str = Field(default="", description="Signing secret for Svix-relayed webhooks")

    # Orders
    payment_reference_prefix: str = Field(default="order", description="Prefix of generated payment references")
    public_base_url: str = Field(
        default="http://localhost:3000",
        description="Storefront URL used for payment callback redirects",
    )
    admin_api_key: str = Field(default="", description="API key required by staff order endpoints")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="FastBite <orders@fastbite.co.za>",
        description="From address for transactional emails",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_paystack_test_mode(self) -> bool:
        """Check if using Paystack test keys."""
        return self.paystack_secret_key.startswith("sk_test_")

    @property
    def webhook_hmac_secret(self) -> str:
        """Secret used to verify HMAC-signed payment webhooks."""
        return self.payment_webhook_secret or self.paystack_secret_key


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
