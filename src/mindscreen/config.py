"""Centralized configuration using Pydantic Settings.

Defaults: a 30 minute inactivity timeout, a 30 second auto-save and at most
8 recommendations per result. All settings can be overridden via environment
variables, e.g. ``ENGINE_SESSION_TIMEOUT_SECONDS`` or ``STORAGE_BACKEND=json_file``.
"""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Skip reading .env file during testing to use code defaults
ENV_FILE = None if os.environ.get("TESTING") else ".env"
ENV_FILE_ENCODING = "utf-8"


class StorageBackendKind(str, Enum):
    """Supported storage backends."""

    MEMORY = "memory"
    JSON_FILE = "json_file"


class EngineSettings(BaseSettings):
    """Assessment engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ENGINE_",
        env_file=ENV_FILE,
        env_file_encoding=ENV_FILE_ENCODING,
        extra="ignore",
    )

    session_timeout_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Inactivity period after which an active session is paused",
    )
    auto_save_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Period of the background auto-save",
    )
    default_language: str = Field(default="en", min_length=2)
    single_active_session_per_type: bool = Field(
        default=True,
        description="Reject a second active session of the same assessment type",
    )


class AnalyzerSettings(BaseSettings):
    """Results analyzer configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ANALYZER_",
        env_file=ENV_FILE,
        env_file_encoding=ENV_FILE_ENCODING,
        extra="ignore",
    )

    max_recommendations: int = Field(default=8, ge=1, le=50)
    trend_threshold: float = Field(
        default=0.1,
        ge=0.0,
        description="Score deltas with a smaller magnitude count as stable",
    )
    max_previous_results: int = Field(default=5, ge=1, le=50)
    stable_pattern_std: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Normalized score std below which scores are consistent",
    )
    variable_pattern_std: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Normalized score std above which scores are highly variable",
    )
    extreme_score_ratio: float = Field(
        default=0.85,
        gt=0.0,
        le=1.0,
        description="Normalized score at or above which a rule counts as extreme",
    )
    recent_activity_days: int = Field(default=30, ge=1, le=365)

    @model_validator(mode="after")
    def validate_pattern_thresholds(self) -> AnalyzerSettings:
        """Ensure the stable threshold sits below the variable threshold."""
        if self.stable_pattern_std >= self.variable_pattern_std:
            raise ValueError("stable_pattern_std must be lower than variable_pattern_std")
        return self


class StorageSettings(BaseSettings):
    """Session and result persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=ENV_FILE,
        env_file_encoding=ENV_FILE_ENCODING,
        extra="ignore",
    )

    backend: StorageBackendKind = Field(default=StorageBackendKind.MEMORY)
    data_dir: Path = Field(
        default=Path("data/mindscreen"),
        description="Directory for json_file namespaces",
    )
    quota_bytes: int = Field(default=5 * 1024 * 1024, ge=1024)
    max_retries: int = Field(default=1, ge=0, le=5)
    drop_oldest_batch: int = Field(
        default=1,
        ge=1,
        description="Records dropped per quota-recovery attempt",
    )
    retention_days: int = Field(
        default=365,
        ge=1,
        description="Finished sessions and results older than this are cleaned up",
    )
    cleanup_on_start: bool = Field(default=True)


class CatalogSettings(BaseSettings):
    """Question bank catalog configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_",
        env_file=ENV_FILE,
        env_file_encoding=ENV_FILE_ENCODING,
        extra="ignore",
    )

    source: Path | None = Field(
        default=None,
        description="YAML or JSON catalog file; None loads the packaged catalog",
    )
    fallback_language: str = Field(default="en", min_length=2)


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=ENV_FILE,
        env_file_encoding=ENV_FILE_ENCODING,
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    format: Literal["json", "console"] = Field(
        default="json",
        description="Log output format",
    )
    include_timestamp: bool = Field(default=True)
    include_caller: bool = Field(default=False)


class APISettings(BaseSettings):
    """API server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=ENV_FILE,
        env_file_encoding=ENV_FILE_ENCODING,
        extra="ignore",
    )

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)
    reload: bool = Field(default=False, description="Enable hot reload (dev only)")
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (restrict in production)",
    )


class Settings(BaseSettings):
    """Root settings combining all configuration groups."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding=ENV_FILE_ENCODING,
        env_nested_delimiter="__",
        extra="ignore",
    )

    engine: EngineSettings = Field(default_factory=EngineSettings)
    analyzer: AnalyzerSettings = Field(default_factory=AnalyzerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: APISettings = Field(default_factory=APISettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()

