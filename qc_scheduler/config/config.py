"""
Application configuration with environment-based settings.
All configuration is explicit, validated, and logged at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development but require
    explicit configuration in production environments.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="QC_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Application
    app_name: str = Field(default="QC Tracker", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # Remote completion store / machine registry
    remote_api_base_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the remote QC API (machines and completion records)"
    )
    remote_api_token: str = Field(default="", description="Bearer token for the remote QC API")
    remote_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for remote calls before falling back to local-only data"
    )

    # Local key-value cache
    local_cache_path: Path = Field(
        default=Path("data/local_cache.json"),
        description="JSON file backing the local key-value cache"
    )
    completions_cache_key: str = Field(
        default="qcCompletions",
        description="Well-known cache key holding locally submitted completions"
    )
    worksheets_cache_key: str = Field(
        default="qcWorksheets",
        description="Cache key holding worksheet assignments"
    )

    # Scheduling policy
    skip_weekends_daily: bool = Field(
        default=True,
        description="Exclude Saturdays and Sundays from daily QC obligations"
    )
    upcoming_lookahead_days: int = Field(
        default=0,
        ge=0,
        description="Days past today to report as upcoming on the due-task dashboard"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def get_safe_config_dict(self) -> dict:
        """Return configuration dict with secrets redacted for logging."""
        config = self.model_dump(mode="json")
        # Redact sensitive values
        if config.get("remote_api_token"):
            config["remote_api_token"] = "***REDACTED***"
        return config


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for the application lifetime.
    Use dependency injection in FastAPI routes for testability.
    """
    return Settings()
