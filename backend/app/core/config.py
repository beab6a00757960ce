"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development; with no
provider credentials set, email calls fail at the provider and
WhatsApp runs in simulation mode.

Usage:
    from backend.app.core.config import settings
    print(settings.BREVO_API_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

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
    APP_NAME: str = "Messaging Dispatcher"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Email (Brevo transactional API) ──
    BREVO_API_URL: str = "https://api.brevo.com/v3/smtp/email"
    BREVO_API_KEY: Optional[str] = None
    EMAIL_SENDER_ADDRESS: str = "no-reply@example.com"
    EMAIL_SENDER_NAME: str = "Messaging System"
    EMAIL_SUBJECT: str = "New Message from Messaging System"

    # ── WhatsApp (Cloud API) ──
    WHATSAPP_MODE: str = "auto"  # auto | live | simulation
    WHATSAPP_API_URL: str = "https://graph.facebook.com/v17.0"
    WHATSAPP_ACCESS_TOKEN: Optional[str] = None
    WHATSAPP_PHONE_NUMBER_ID: Optional[str] = None
    WHATSAPP_SIMULATED_DELAY: float = 1.0  # seconds

    # ── Outbound HTTP ──
    HTTP_TIMEOUT_SECONDS: float = 30.0

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def whatsapp_live_configured(self) -> bool:
        return bool(self.WHATSAPP_ACCESS_TOKEN and self.WHATSAPP_PHONE_NUMBER_ID)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
