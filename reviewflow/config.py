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

    # Database
    database_url: str
    database_pool_size: int = 10
    database_max_overflow: int = 5

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Twilio
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_phone: str = ""
    twilio_messaging_service_sid: str = ""

    # SendGrid
    sendgrid_api_key: str = ""
    sendgrid_from_email: str = "reviews@rankitpro.com"
    sendgrid_from_name: str = "Rank It Pro"

    # Review links (falls back to app_base_url)
    review_link_base_url: str = ""
    # Where a clicked link lands: {base}/review/{token} (falls back to app_base_url)
    review_page_base_url: str = ""

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_poll_seconds: int = 300
    scheduler_batch_size: int = 100

    # Sentry
    sentry_dsn: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
