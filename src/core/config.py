"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

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
    app_name: str = Field(default="tea-storefront-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")
    jwt_audience: str = Field(default="authenticated", description="Expected JWT aud claim")

    # Carrier (logistics provider)
    carrier_base_url: str = Field(default="https://track.delhivery.com", description="Carrier API base URL")
    carrier_api_token: str = Field(default="", description="Carrier API token")
    carrier_timeout_seconds: float = Field(default=10.0, description="Timeout for every carrier call, in seconds")
    carrier_warehouse_name: str = Field(default="", description="Registered pickup location name at the carrier")
    carrier_tracking_url_template: str = Field(
        default="https://www.delhivery.com/track/package/{waybill}",
        description="Public tracking URL, formatted with the waybill",
    )
    origin_pincode: str = Field(default="122004", description="Warehouse pincode shipments originate from")
    default_package_weight_grams: int = Field(default=100, description="Fallback weight for packages without catalog weight")
    preview_weight_grams: int = Field(default=500, description="Weight used for pre-checkout shipping previews")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Zenveda <orders@zenveda.in>",
        description="From address for transactional emails",
    )
    admin_email: str = Field(default="admin@zenveda.in", description="Recipient of new order alerts")

    # WhatsApp (BSP)
    whatsapp_enabled: bool = Field(default=False, description="Send WhatsApp template messages")
    whatsapp_base_url: str = Field(default="", description="WhatsApp BSP API base URL")
    whatsapp_sender_id: str = Field(default="", description="WhatsApp BSP sender id")
    whatsapp_api_key: str = Field(default="", description="WhatsApp BSP API key")

    # Rate limiting
    rate_limit_window_seconds: int = Field(default=60, description="Rate limit window in seconds")
    rate_limit_coupon_requests: int = Field(default=10, description="Coupon validations per customer per window")
    rate_limit_order_requests: int = Field(default=5, description="Order placements per customer per window")

    # Discounts
    discount_expiry_interval_seconds: int = Field(
        default=3600,
        description="Interval of the in-process discount expiry loop (0 disables it)",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def carrier_configured(self) -> bool:
        """Check if carrier credentials are present."""
        return bool(self.carrier_api_token)


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
