from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "WorkTimer"
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parent.parent)
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parent.parent.parent / "data")
    TZ: str = "UTC"

    API_KEY: str = Field(default="", validation_alias=AliasChoices("API_KEY", "API_TOKEN"))
    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 15
    JWT_REFRESH_TTL_DAYS: int = 7
    ALLOWED_ORIGINS: list[str] = Field(default_factory=list)

    DB_URL: str | None = Field(default=None, validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))

    LOG_LEVEL: str = "INFO"
    # "json" for log shippers, "text" for a terminal.
    LOG_FORMAT: str = "json"

    # Seconds between elapsed-time refreshes of a running timer.
    TIMER_TICK_SECONDS: float = Field(default=1.0, gt=0)
    # When disabled, timer events only go to the log instead of the activity feed table.
    ACTIVITY_FEED_ENABLED: bool = True

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @property
    def database_url(self) -> str:
        return self.DB_URL or f"sqlite:///{self.DATA_DIR / 'worktimer.db'}"

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("ALLOWED_ORIGINS must be a comma separated string or list")


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    if settings.DB_URL is None:
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings


settings = get_settings()
