"""Application configuration helpers."""

from __future__ import annotations

from functools import lru_cache
import logging
import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AppConfig(BaseModel):
    """Runtime configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    supabase_url: str = Field(..., description="Base URL of the Supabase project")
    supabase_service_role_key: str = Field(
        ..., description="Service role key used by the store and auth clients"
    )
    port: int = Field(default=8080, ge=0, le=65535, description="HTTP listen port")
    public_url: Optional[str] = Field(
        default=None,
        description="Externally visible base URL (defaults to http://localhost:<port>)",
    )
    log_level: str = Field(default="INFO", description="Root log level")
    environment: str = Field(default="development", description="Deployment environment")
    shutdown_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Grace period before a forced exit on SIGTERM/SIGINT",
    )

    @field_validator("supabase_url", mode="before")
    @classmethod
    def _normalize_supabase_url(cls, value: Optional[str]) -> str:
        if value is None or not str(value).strip():
            raise ValueError("Missing required environment variable: SUPABASE_URL")
        cleaned = str(value).strip().rstrip("/")
        if not cleaned.startswith(("http://", "https://")):
            raise ValueError("SUPABASE_URL must be an http(s) URL")
        return cleaned

    @field_validator("supabase_service_role_key", mode="before")
    @classmethod
    def _require_key(cls, value: Optional[str]) -> str:
        if value is None or not str(value).strip():
            raise ValueError(
                "Missing required environment variable: SUPABASE_SERVICE_ROLE_KEY"
            )
        return str(value).strip()

    @field_validator("log_level", mode="before")
    @classmethod
    def _check_log_level(cls, value: Optional[str]) -> str:
        level = (value or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"LOG_LEVEL must be a logging level name, got {value!r}")
        return level

    @model_validator(mode="after")
    def _default_public_url(self) -> "AppConfig":
        if not self.public_url:
            object.__setattr__(self, "public_url", f"http://localhost:{self.port}")
        else:
            object.__setattr__(self, "public_url", self.public_url.rstrip("/"))
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def auth_issuer(self) -> str:
        """Issuer URL of the Supabase Auth server."""
        return f"{self.supabase_url}/auth/v1"


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


def _read_int(key: str, default: int) -> int:
    raw = _read_env(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load and cache application configuration."""
    shutdown_timeout = _read_env("SHUTDOWN_TIMEOUT_SECONDS", "10")
    return AppConfig(
        supabase_url=_read_env("SUPABASE_URL"),
        supabase_service_role_key=_read_env("SUPABASE_SERVICE_ROLE_KEY"),
        port=_read_int("PORT", 8080),
        public_url=_read_env("PUBLIC_URL"),
        log_level=_read_env("LOG_LEVEL", "INFO"),
        environment=_read_env("ENVIRONMENT", "development"),
        shutdown_timeout_seconds=shutdown_timeout,
    )


def reload_config() -> AppConfig:
    """Clear cached config (useful for tests) and reload."""
    get_config.cache_clear()
    return get_config()


__all__ = ["AppConfig", "get_config", "reload_config"]
