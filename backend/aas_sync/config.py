"""
Application configuration using Pydantic Settings.

Supports environment variables and .env files for configuration.
"""

from functools import lru_cache
import json
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


def _parse_list(value: str) -> list[str]:
    value = value.strip()
    if value.startswith("["):
        try:
            parsed = json.loads(value)
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        except json.JSONDecodeError:
            pass
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    # Tree sessions are held in process memory
    workers: int = 1

    # CORS
    cors_origins: list[str] = ["http://localhost:4200", "http://localhost:3000"]

    # Configuration backend serving /api/config/{source|target}-system/{id}/aas
    console_api_url: str = "http://localhost:8090"
    request_timeout_seconds: float | None = None

    # Reconciliation
    reconcile_base_delay_seconds: float = Field(default=1.0, ge=0)
    reconcile_max_attempts: int = Field(default=3, ge=0)
    attach_refresh_offsets_seconds: list[float] = [0.0, 1.5, 4.0]
    optimistic_insert_on_timeout: bool = False

    # File upload limits
    max_upload_size_mb: int = 50

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return _parse_list(v)
        return v

    @field_validator("attach_refresh_offsets_seconds", mode="before")
    @classmethod
    def parse_refresh_offsets(cls, v):
        if isinstance(v, str):
            return [float(item) for item in _parse_list(v)]
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
