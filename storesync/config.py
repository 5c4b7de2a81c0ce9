"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.

Platform OAuth client credentials set here are deployment constants: they
always take precedence over values stored in the integration_settings table.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    app_secret_key: str
    log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (order listing cache + OAuth state tokens)
    redis_url: str = "redis://localhost:6379/0"

    # Webflow OAuth app (deployment constants; empty = fall back to stored config)
    webflow_client_id: str = ""
    webflow_client_secret: str = ""

    # Outbound platform calls. None = httpx default; no retries are made.
    platform_http_timeout: Optional[float] = None

    # Order normalization
    store_timezone: str = "UTC"

    # Self-hosted shop identity (used as the store's platform_site_id)
    self_hosted_site_url: str = "http://localhost"
    self_hosted_site_name: str = "WooCommerce Store"

    # Encryption for stored OAuth credentials (Fernet key)
    encryption_key: str = ""

    # Operator auth
    operator_jwt_secret: str = ""
    operator_jwt_expiry_hours: int = 12

    # Sentry
    sentry_dsn: str = ""

    # Operational limits
    order_cache_ttl_seconds: int = 300
    oauth_state_ttl_seconds: int = 600
    log_dedup_window_seconds: int = 2
    log_retention_days: int = 90

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def oauth_redirect_uri(self) -> str:
        return f"{self.app_base_url.rstrip('/')}/api/v1/oauth/callback"

    @property
    def webhook_callback_url(self) -> str:
        return f"{self.app_base_url.rstrip('/')}/api/v1/webhook"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
