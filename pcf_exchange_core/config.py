"""
Centralized configuration management for the PCF Exchange Core.

This module provides a unified configuration system with support for:
- Environment variables
- Per-request HTTP timeouts and token lifetimes
- Validation using Pydantic
"""

import os
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import EnvironmentVariable, Limits, LogLevel, Timeouts


def _env_int(name: EnvironmentVariable, default: int) -> int:
    value = os.getenv(name.value)
    return int(value) if value else default


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.DATABASE_URL.value, "sqlite:///./pcf_exchange.db"
        ),
        description="Database connection string",
    )
    pool_size: int = Field(default=5, description="Connection pool size")
    echo: bool = Field(default=False, description="Echo SQL statements")


class HttpConfig(BaseModel):
    """Outbound HTTP configuration for partner action calls."""

    request_timeout: float = Field(
        default_factory=lambda: float(
            _env_int(EnvironmentVariable.HTTP_TIMEOUT, Timeouts.EXTERNAL_API_CALL)
        ),
        gt=0,
        description="Timeout in seconds applied to every single request",
    )
    verify_ssl: bool = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.VERIFY_SSL.value, "true").lower()
        != "false",
        description="Verify TLS certificates of partner endpoints",
    )
    user_agent: str = Field(default="pcf-exchange-core", description="User-Agent header value")


class TokenConfig(BaseModel):
    """Bearer token lifecycle configuration."""

    refresh_margin_seconds: int = Field(
        default_factory=lambda: _env_int(
            EnvironmentVariable.TOKEN_REFRESH_MARGIN, Timeouts.TOKEN_REFRESH_MARGIN
        ),
        ge=0,
        description="Tokens expiring within this margin are refreshed before use",
    )
    default_lifetime_seconds: int = Field(
        default=Timeouts.DEFAULT_TOKEN_LIFETIME,
        gt=0,
        description="Lifetime assumed when the partner omits expires_in",
    )
    wait_timeout_seconds: float = Field(
        default=Timeouts.TOKEN_WAIT,
        gt=0,
        description="How long a caller waits on a refresh already in flight",
    )


class FetchConfig(BaseModel):
    """Footprint retrieval configuration."""

    page_limit: int = Field(
        default=Limits.DEFAULT_PAGE_LIMIT, gt=0, description="Page size requested from partners"
    )
    max_pages: int = Field(
        default=Limits.MAX_PAGES, gt=0, description="Upper bound on pages followed per fetch"
    )


class SyncConfig(BaseModel):
    """Data source synchronization configuration."""

    max_workers: int = Field(
        default_factory=lambda: _env_int(
            EnvironmentVariable.SYNC_MAX_WORKERS, Limits.DEFAULT_SYNC_WORKERS
        ),
        gt=0,
        le=Limits.MAX_SYNC_WORKERS,
        description="Data sources synchronized concurrently",
    )
    source_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Optional wall-clock limit for syncing one data source"
    )


class ValidationConfig(BaseModel):
    """Footprint tree validation configuration."""

    breakdown_tolerance: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Absolute tolerance for the breakdown sum check",
    )
    block_on_breakdown_mismatch: bool = Field(
        default=False, description="Reject footprints whose breakdown does not add up"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class SecurityConfig(BaseModel):
    """Security-related configuration."""

    encryption_key: Optional[str] = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.ENCRYPTION_KEY.value),
        description="Symmetric key for partner secrets at rest",
    )


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.DEBUG.value, "false").lower()
        == "true",
        description="Debug mode",
    )

    # Sub-configurations
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    token: TokenConfig = Field(default_factory=TokenConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    # Custom configuration
    custom: Dict[str, Any] = Field(default_factory=dict, description="Custom configuration values")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()

    def get_custom(self, key: str, default: Any = None) -> Any:
        """Get a custom configuration value."""
        return self.custom.get(key, default)


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
