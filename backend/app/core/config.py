"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development; gateway
credentials default to None and are only demanded when a channel
actually needs them.

Usage:
    from backend.app.core.config import settings
    print(settings.MEDIA_SERVER_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    ENVIRONMENT: str = "development"  # development | staging | production
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Dispatch ──
    SMS_DEFAULT_REGION: str = "PL"  # domestic region for numbers without '+'
    SMS_SENDER: str = "Clinic"  # alphanumeric sender used when callers pass none
    SMS_REJECT_EMPTY_BODY: bool = True

    # ── Twilio (carrier channel) ──
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_SMS_NUMBER: Optional[str] = None
    TWILIO_SMS_NUMBER_US: Optional[str] = None  # sender for +1 destinations

    # ── SMSAPI (aggregator channel) ──
    SMSAPI_URL: str = "https://api.smsapi.pl"
    SMSAPI_TOKEN: Optional[str] = None
    SMSAPI_2WAY_NUMBER: Optional[str] = None  # sender able to receive replies
    SMSAPI_TIMEOUT_SECONDS: float = 10.0

    # ── Media server (HTTP channel) ──
    MEDIA_SERVER_URL: str = "http://localhost:8080"
    MEDIA_SERVER_TOKEN: Optional[str] = None
    MEDIA_SERVER_TIMEOUT_SECONDS: float = 10.0  # per attempt
    MEDIA_SERVER_MAX_RETRIES: int = 3  # total attempts, not extra ones
    MEDIA_SERVER_RETRY_DELAY_SECONDS: float = 0.0  # linear: delay × attempt

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
