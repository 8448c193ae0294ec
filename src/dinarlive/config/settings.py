# src/dinarlive/config/settings.py
"""
Settings - Pydantic-based Configuration Management

Provides centralized configuration management using Pydantic Settings.
Every value can be overridden through environment variables or a .env file.

Files that USE this module:
- dinarlive.app (logging, data directory and engine wiring)
- dinarlive.adapters.ai.provider_client (API key, base URL, model, timeout)
- dinarlive.adapters.persistence.file_store (data directory)
- dinarlive.application.orchestrator (intervals, retry and cooldown settings)
- dinarlive.application.health (freshness threshold)

Files that this module USES:
- dinarlive.shared.validators (validation functions for settings)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

from pathlib import Path  # Object-oriented filesystem paths
from typing import Optional  # Type hints for optional values

from pydantic import Field, field_validator  # Data validation and field configuration
from pydantic_settings import BaseSettings, SettingsConfigDict  # Settings management with Pydantic

from dinarlive.shared.validators import validate_api_key, validate_http_url


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- AI data provider (OpenAI-compatible chat completions) ---
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    provider_base_url: str = Field(default="https://api.openai.com/v1", alias="PROVIDER_BASE_URL")
    provider_model: str = Field(default="gpt-4o-search-preview", alias="PROVIDER_MODEL")
    provider_timeout_seconds: int = Field(default=60, alias="PROVIDER_TIMEOUT_SECONDS", ge=1, le=600)
    exchange_rate_url: str = Field(
        default="https://alanchand.com/en/exchange-rates/iqd-usd", alias="EXCHANGE_RATE_URL"
    )

    # --- Scheduling ---
    fetch_interval_minutes: int = Field(default=120, alias="FETCH_INTERVAL_MINUTES", ge=1, le=1440)
    refresh_cooldown_seconds: int = Field(default=300, alias="REFRESH_COOLDOWN_SECONDS", ge=0)

    # --- Retry policy (constant delay, not exponential) ---
    retry_max_attempts: int = Field(default=3, alias="RETRY_MAX_ATTEMPTS", ge=1, le=10)
    retry_delay_seconds: float = Field(default=2.0, alias="RETRY_DELAY_SECONDS", ge=0.0)

    # --- Validation ---
    # 50,000 IQD per 100 USD (500 per dollar) is far below any real market rate
    min_iqd_per_100_usd: float = Field(default=50000.0, alias="MIN_IQD_PER_100_USD", gt=0)
    history_days: int = Field(default=7, alias="HISTORY_DAYS", ge=0, le=90)

    # --- Persistence ---
    data_dir: Path = Field(default=Path("./data"), alias="DATA_DIR")

    # --- Logging (for server deployment) ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")
    log_dir: Optional[str] = Field(default=None, alias="LOG_DIR")
    log_stdout: bool = Field(default=True, alias="DINARLIVE_LOG_STDOUT")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")  # 10MB
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    @property
    def fetch_interval_seconds(self) -> float:
        return self.fetch_interval_minutes * 60.0

    @property
    def provider_configured(self) -> bool:
        """True when an API key is present, i.e. network fetches can run."""
        return bool(self.openai_api_key)

    @field_validator("openai_api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Validate API key format (empty means not configured)."""
        if v and not validate_api_key(v):
            raise ValueError("Invalid OPENAI_API_KEY format")
        return v

    @field_validator("provider_base_url", "exchange_rate_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not validate_http_url(v):
            raise ValueError(f"Invalid URL: {v!r}")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be DEBUG, INFO, WARNING, ERROR or CRITICAL")
        return level


# Global settings instance
settings = Settings()
