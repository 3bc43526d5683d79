"""Pydantic settings configuration for cookie sessions."""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Valid logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Session settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="COOKIE_SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: LogLevel = LogLevel.INFO

    # HTTP client settings
    timeout: float = Field(default=30.0, gt=0)
    user_agent: str | None = None

    # Redirect settings
    follow_redirects: bool = False
    max_redirects: int = Field(default=20, ge=0)

    # Cookie persistence; no file means cookies live only as long as the session
    cookie_file: Path | None = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
