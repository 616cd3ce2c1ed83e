"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"
    allowed_origins: str = ""  # Comma-separated CORS origins (localhost always allowed)

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (webhook delivery dedup only)
    redis_url: str = "redis://localhost:6379/0"

    # Telnyx
    telnyx_api_key: str = ""
    telnyx_public_key: str = ""  # Base64 Ed25519 key from the Telnyx portal
    telnyx_api_base_url: str = "https://api.telnyx.com/v2"
    telnyx_timeout_seconds: float = 10.0
    telnyx_from_number: str = ""  # Used when no messaging profile is active

    # Webhooks
    webhook_tolerance_seconds: int = 300

    # Live stream
    stream_heartbeat_seconds: float = 30.0
    stream_max_pending: int = 100

    # Single dashboard user
    default_user_id: str = "dashboard-user-1"
    default_user_email: str = "owner@smsdash.local"
    default_user_name: str = "Dashboard Owner"

    # Business hours are evaluated in this timezone
    business_timezone: str = "UTC"

    # Sentry
    sentry_dsn: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
