from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Migration settings loaded from environment variables with validation."""

    model_config = SettingsConfigDict(
        env_file=(str(Path(__file__).resolve().parents[1] / ".env"), ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    target_url: str = Field(default="http://localhost:5678", alias="N8N_TARGET_URL")
    target_api_key: SecretStr = Field(default=SecretStr(""), alias="N8N_TARGET_API_KEY")
    source_url: str | None = Field(default=None, alias="N8N_SOURCE_URL")
    source_api_key: SecretStr = Field(default=SecretStr(""), alias="N8N_SOURCE_API_KEY")
    http_timeout: float = Field(default=30.0, gt=0, le=600, alias="N8N_HTTP_TIMEOUT")

    delay_seconds: float = Field(default=0.5, ge=0, le=60, alias="MIGRATION_DELAY_SECONDS")
    skip_existing: bool = Field(default=True, alias="MIGRATION_SKIP_EXISTING")
    stop_on_error: bool = Field(default=False, alias="MIGRATION_STOP_ON_ERROR")
    map_skipped: bool = Field(default=False, alias="MIGRATION_MAP_SKIPPED")
    carry_tags: bool = Field(default=True, alias="MIGRATION_CARRY_TAGS")
    activate: bool = Field(default=False, alias="MIGRATION_ACTIVATE")
    allow_cycles: bool = Field(default=False, alias="MIGRATION_ALLOW_CYCLES")
    report_dir: Path = Field(default=Path("."), alias="MIGRATION_REPORT_DIR")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("target_url")
    @classmethod
    def validate_target_url(cls, value: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        normalized = value.strip()
        if not normalized.lower().startswith(("http://", "https://")):
            raise ValueError("N8N_TARGET_URL must start with http:// or https://")
        return normalized.rstrip("/")

    @field_validator("source_url", mode="before")
    @classmethod
    def validate_source_url(cls, value: str | None) -> str | None:
        if value is None or not str(value).strip():
            return None
        normalized = str(value).strip()
        if not normalized.lower().startswith(("http://", "https://")):
            raise ValueError("N8N_SOURCE_URL must start with http:// or https://")
        return normalized.rstrip("/")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() if isinstance(value, str) else value


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()
