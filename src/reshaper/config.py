"""Service settings, read from ``RESHAPER_*`` environment variables or ``.env``."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RESHAPER_", env_file=".env", extra="ignore")

    ENVIRONMENT: Environment = Environment.development
    LOG_LEVEL: str = "INFO"

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=8000, gt=0, lt=65536)

    # ── Pipeline ──
    NAMESPACE: str = Field(default="promax_dex", min_length=1)
    TIMESTAMP_FIELD: str = "timestamp"
    IDEMPOTENCY_HEADER: str = "idempotency-key"

    # ── Diagnostics ──
    BODY_PREVIEW_CHARS: int = Field(default=500, ge=0)
    LARGE_PAYLOAD_BYTES: int = Field(default=5_000_000, gt=0)


@lru_cache
def get_settings() -> Settings:
    return Settings()
