"""Configuration management for baca."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_IMAGE = "ghcr.io/manno/background-coder:latest"


class BacaSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    kubectl_path: str | None = Field(default=None, validation_alias="KUBECTL_PATH")
    kubeconfig: Path | None = Field(default=None, validation_alias="BACA_KUBECONFIG")
    context: str | None = Field(default=None, validation_alias="BACA_CONTEXT")
    namespace: str = Field(default="default", validation_alias="BACA_NAMESPACE")
    image: str = Field(default=DEFAULT_IMAGE, validation_alias="BACA_IMAGE")
    poll_interval: float = Field(default=5.0, validation_alias="BACA_POLL_INTERVAL")
    wait_timeout: float = Field(default=30 * 60.0, validation_alias="BACA_WAIT_TIMEOUT")
    log_level: str = Field(default="INFO", validation_alias="BACA_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "BACA_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("namespace")
    @classmethod
    def _normalize_namespace(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("BACA_NAMESPACE must not be empty")
        return normalized

    @field_validator("poll_interval", "wait_timeout")
    @classmethod
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("BACA_POLL_INTERVAL and BACA_WAIT_TIMEOUT must be > 0")
        return value


@lru_cache(maxsize=1)
def get_settings() -> BacaSettings:
    """Return cached settings instance."""

    settings = BacaSettings()
    if settings.kubeconfig is not None:
        settings.kubeconfig = settings.kubeconfig.expanduser()
    return settings


__all__ = ["BacaSettings", "DEFAULT_IMAGE", "get_settings"]
