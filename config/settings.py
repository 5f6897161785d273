"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. Every key uses
the ``CAMPUS_`` prefix (e.g. ``CAMPUS_REDIS_URL``, ``CAMPUS_SMTP_HOST``).
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the campus complaints backend.

    Environment variables are loaded from a ``.env`` file when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="CAMPUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── Persistence ────────────────────────────────────────────────────
    # Empty URL keeps every collection in process memory.
    redis_url: str = ""
    store_namespace: str = "campus:"

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = ""

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    # ── E-mail (SMTP) ──────────────────────────────────────────────────
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    from_email: str = "no-reply@campus.example.edu"

    # ── SMS gateway ────────────────────────────────────────────────────
    sms_provider: Literal["msg91", "textlocal", "mock"] = "mock"
    sms_api_key: str = ""
    sms_sender_id: str = "CAMPUS"

    # ── Notification delivery ──────────────────────────────────────────
    notification_timeout_seconds: float = Field(default=10.0, gt=0)
    notification_concurrency: int = Field(default=8, ge=1)
    notification_background: bool = True

    # ── Development seed data ──────────────────────────────────────────
    seed_users_file: str = ""

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
