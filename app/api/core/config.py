import os
from pathlib import Path

from decouple import Config, RepositoryEnv
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = next(p for p in Path(__file__).resolve().parents if (p / "main.py").exists())
BASE_DIR = PROJECT_ROOT

# Determine which env file to load
env_file = os.getenv("ENV_FILE", ".env")
env_path = PROJECT_ROOT / env_file

# Only use RepositoryEnv if the env file exists
if env_path.exists():
    config = Config(RepositoryEnv(env_path))
else:
    # fallback: read directly from os.environ using decouple's AutoConfig
    from decouple import AutoConfig

    config = AutoConfig(search_path=None)

DEFAULT_SECRET_KEY = "your-secret-key-for-sessions"


class Settings(BaseSettings):
    # App general
    DEBUG: bool = config("DEBUG", default=False, cast=bool)
    APP_NAME: str = config("APP_NAME", default="HealthScan Waitlist")
    APP_VERSION: str = config("APP_VERSION", default="1.0.0")
    ENVIRONMENT: str = config("ENVIRONMENT", default="dev")
    APP_PORT: int = config("APP_PORT", default=8000, cast=int)
    SECRET_KEY: str = config("SECRET_KEY", default=DEFAULT_SECRET_KEY)
    APP_URL: str = config("APP_URL", default="https://healthscan.live")
    DEV_URL: str = config("DEV_URL", default="http://localhost:3000")
    # Public site used to build confirmation and referral links
    BASE_URL: str = config("BASE_URL", default="https://healthscan.live")

    # Redis
    REDIS_URL: str = config("REDIS_URL", default="redis://localhost:6379/0")
    KV_LOCK_TIMEOUT_SECONDS: int = config("KV_LOCK_TIMEOUT_SECONDS", default=10, cast=int)
    KV_LOCK_WAIT_SECONDS: int = config("KV_LOCK_WAIT_SECONDS", default=5, cast=int)

    # Email confirmation tokens (falls back to an explicitly set SECRET_KEY)
    EMAIL_CONFIRMATION_SECRET: str = config("EMAIL_CONFIRMATION_SECRET", default="")
    EMAIL_CONFIRMATION_TTL_HOURS: int = config("EMAIL_CONFIRMATION_TTL_HOURS", default=24, cast=int)

    # Waitlist signup rate limit (per client IP)
    WAITLIST_RATE_LIMIT_MAX: int = config("WAITLIST_RATE_LIMIT_MAX", default=5, cast=int)
    WAITLIST_RATE_LIMIT_WINDOW_SECONDS: int = config(
        "WAITLIST_RATE_LIMIT_WINDOW_SECONDS", default=3600, cast=int
    )

    # Waitlist Email
    MAIL_USERNAME: str = config("MAIL_USERNAME", default="")
    MAIL_PASSWORD: str = config("MAIL_PASSWORD", default="")
    EMAIL: str = config("EMAIL", default="noreply@healthscan.live")
    SMTP_SERVER: str = config("SMTP_SERVER", default="")
    SMTP_PORT: int = config("SMTP_PORT", default=587, cast=int)
    SMTP_START_TLS: bool = config("SMTP_START_TLS", default=True, cast=bool)
    EMAIL_SEND_TIMEOUT_SECONDS: int = config("EMAIL_SEND_TIMEOUT_SECONDS", default=15, cast=int)
    WAITLIST_ALERT_EMAIL: str = config("WAITLIST_ALERT_EMAIL", default="")

    # Outbound webhooks (comma separated URLs)
    WAITLIST_WEBHOOK_URLS: str = config("WAITLIST_WEBHOOK_URLS", default="")
    WAITLIST_WEBHOOK_TOKEN: str = config("WAITLIST_WEBHOOK_TOKEN", default="")
    WEBHOOK_TIMEOUT_SECONDS: int = config("WEBHOOK_TIMEOUT_SECONDS", default=10, cast=int)

    @property
    def FRONTEND_URL(self) -> str:
        return os.getenv("FRONTEND_URL") or (self.DEV_URL if self.DEBUG else self.APP_URL)

    @property
    def MAIL_ENABLED(self) -> bool:
        return bool(self.SMTP_SERVER and self.MAIL_USERNAME)

    @property
    def CONFIRMATION_SECRET(self) -> str:
        if self.EMAIL_CONFIRMATION_SECRET:
            return self.EMAIL_CONFIRMATION_SECRET
        # the shipped placeholder is public, never sign tokens with it
        if self.SECRET_KEY and self.SECRET_KEY != DEFAULT_SECRET_KEY:
            return self.SECRET_KEY
        return ""

    @property
    def WEBHOOK_URLS(self) -> list[str]:
        return [url.strip() for url in self.WAITLIST_WEBHOOK_URLS.split(",") if url.strip()]

    model_config = SettingsConfigDict(extra="allow")


settings = Settings()
