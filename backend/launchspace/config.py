from __future__ import annotations
import os
from pydantic import BaseModel

def _csv(name: str, default: str = "") -> list[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "launchspace-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Launch Space")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/launchspace_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    store_backend: str = os.getenv("STORE_BACKEND", "sql")  # sql|memory

    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    cron_secret: str = os.getenv("CRON_SECRET", "")

    # Competition calendar
    competition_timezone: str = os.getenv("COMPETITION_TIMEZONE", "PST")  # "PST" = fixed UTC-8, or an IANA name
    horizon_weeks: int = int(os.getenv("HORIZON_WEEKS", "20"))
    available_weeks_limit: int = int(os.getenv("AVAILABLE_WEEKS_LIMIT", "8"))
    max_standard_slots: int = int(os.getenv("MAX_STANDARD_SLOTS", "15"))
    max_premium_extra_slots: int = int(os.getenv("MAX_PREMIUM_EXTRA_SLOTS", "10"))
    homepage_duration_days: int = int(os.getenv("HOMEPAGE_DURATION_DAYS", "7"))
    lazy_reconcile: bool = os.getenv("LAZY_RECONCILE", "1") == "1"
    reconcile_interval_seconds: int = int(os.getenv("RECONCILE_INTERVAL_SECONDS", "0"))  # 0 disables the in-process loop

    # Outbound events
    webhook_urls: list[str] = _csv("WEBHOOK_URLS")
    webhook_secret: str = os.getenv("WEBHOOK_SECRET", "")
    notification_url: str = os.getenv("NOTIFICATION_URL", "")

    # Stripe configuration
    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")

settings = Settings()
