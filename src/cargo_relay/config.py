"""Application configuration."""

import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    supabase_url: str
    supabase_service_key: str
    admin_token: str
    telegram_allowed_user_ids: str | None = None
    environment: str = _ENVIRONMENT

    # Correlation windows, in seconds.
    burst_debounce_seconds: float = Field(default=1.5, gt=0)
    burst_binding_ttl_seconds: float = Field(default=300, gt=0)
    retired_burst_ttl_seconds: float = Field(default=86400, gt=0)
    prompt_ttl_seconds: float = Field(default=600, gt=0)
    intake_session_ttl_seconds: float = Field(default=43200, gt=0)

    max_group_photos: int = Field(default=10, ge=1, le=10)
    send_timeout_seconds: float = Field(default=10, gt=0)
    display_timezone: str = "Asia/Seoul"

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @field_validator("display_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value


def parse_allowed_user_ids(raw: str | None) -> set[int] | None:
    """Parse allowed Telegram user IDs from env."""
    if raw is None:
        return None
    cleaned = raw.strip()
    if cleaned in {"", "*"}:
        return None
    ids: set[int] = set()
    for chunk in cleaned.split(","):
        value = chunk.strip()
        if not value:
            continue
        if value.isdigit():
            ids.add(int(value))
    return ids or None
