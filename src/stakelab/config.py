"""Environment-driven configuration helpers for StakeLab."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stakelab.betting.types import FallbackPolicy


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or .env files."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: AnyUrl | str = Field(default="sqlite:///./stakelab.db")
    log_level: str = Field(default="INFO")

    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o")
    oracle_temperature: float = Field(default=0.4, ge=0.0, le=2.0)

    stakelab_api_key: str = Field(default="", validation_alias="STAKELAB_API_KEY")

    default_bankroll: float = Field(default=100.0, gt=0.0)
    kelly_fraction: float = Field(default=0.25, gt=0.0, le=1.0)
    fallback_policy: FallbackPolicy = Field(default=FallbackPolicy.EQUAL_SPLIT)

    rate_limit_window_seconds: float = Field(default=60.0, gt=0.0)
    rate_limit_predict: int = Field(default=10, ge=0)
    rate_limit_save: int = Field(default=20, ge=0)
    rate_limit_custom: int = Field(default=15, ge=0)
    rate_limit_default: int = Field(default=30, ge=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()  # type: ignore[call-arg]


def get_openai_api_key() -> str:
    """Return the OpenAI API key or raise a helpful error."""

    key = os.getenv("OPENAI_API_KEY") or get_settings().openai_api_key
    if not key:
        raise RuntimeError(
            "OPENAI_API_KEY is not configured. "
            "Set it in .env for local dev or in the deployment environment."
        )
    return key


def get_api_access_key() -> str:
    key = os.getenv("STAKELAB_API_KEY") or get_settings().stakelab_api_key
    if not key:
        raise RuntimeError(
            "STAKELAB_API_KEY is not configured. Set it in your environment or deployment secrets."
        )
    return key
