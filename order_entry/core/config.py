"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports two modes:
    - DEVELOPMENT: Uses the in-memory order store (no backend needed)
    - PRODUCTION: Talks to the restaurant order store over HTTP

The ENV_MODE variable controls which store implementation is instantiated,
enabling seamless switching between local testing and a live floor.

Usage:
    from order_entry.core.config import get_settings

    settings = get_settings()
    if settings.is_development:
        # In-memory store
    else:
        # HTTP store at settings.store_base_url

Version: 1.0.0
"""

import logging
import sys
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing with the in-memory order store
        PRODUCTION: Live floor backed by the HTTP order store
        STAGING: Pre-production HTTP store
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.

    Attributes:
        env_mode: Current environment (development/production/staging)
        debug: Enable verbose logging and error details

        # Order store
        store_base_url: Base URL of the order/table/menu REST API
        store_timeout_seconds: Per-request timeout for store calls

        # Edit window
        edit_window_seconds: Grace period after sending before items lock
        draft_notice_seconds: How long the "draft saved" notice stays up
        tick_interval_seconds: Countdown projection resolution

        # Business Configuration
        tax_rate: Local tax rate (decimal)
        quick_order_prefix: Table number prefix for quick orders
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Order Entry Core",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8001,
        description="API server port"
    )

    # ==========================================================================
    # ORDER STORE
    # ==========================================================================

    store_base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the order store REST API"
    )
    store_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single order store call"
    )

    # ==========================================================================
    # EDIT WINDOW
    # ==========================================================================

    edit_window_seconds: int = Field(
        default=15,
        ge=1,
        description="Seconds a sent item stays removable before it locks"
    )
    draft_notice_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Seconds the 'draft saved' confirmation is displayed"
    )
    tick_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Countdown tick resolution"
    )
    refresh_interval_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Item status polling interval (0 disables polling)"
    )
    session_idle_seconds: float = Field(
        default=1800.0,
        ge=0,
        description="Close API sessions untouched for this long (0 keeps them until deleted)"
    )

    # ==========================================================================
    # BUSINESS CONFIGURATION
    # ==========================================================================

    tax_rate: float = Field(
        default=0.03,
        description="Tax rate as decimal (3%)"
    )
    quick_order_prefix: str = Field(
        default="QO",
        min_length=1,
        description="Table number prefix for quick orders"
    )
    quick_order_section: str = Field(
        default="Quick Orders",
        description="Floor section quick-order tables are created in"
    )
    default_order_type: str = Field(
        default="dine_in",
        description="Order type used when opening a new order"
    )
    default_server_id: str = Field(
        default="Unknown",
        description="Server recorded on orders when the table has none"
    )

    # ==========================================================================
    # MOCK STORE
    # ==========================================================================

    mock_failure_rate: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Probability a mock store call fails"
    )
    mock_min_latency: float = Field(
        default=0.0,
        ge=0.0,
        description="Minimum simulated store latency in seconds"
    )
    mock_max_latency: float = Field(
        default=0.0,
        ge=0.0,
        description="Maximum simulated store latency in seconds"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    @field_validator("store_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def use_real_services(self) -> bool:
        """Check if the HTTP order store should be used."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate that all required production settings are configured.

        Returns:
            List of missing configuration keys (empty if all present)
        """
        missing = []

        if self.use_real_services:
            if not self.store_base_url:
                missing.append("STORE_BASE_URL")
            if "localhost" in self.store_base_url and self.is_production:
                missing.append("STORE_BASE_URL (points at localhost)")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are loaded only once,
    keeping configuration consistent across the application lifecycle.

    Returns:
        Settings: Configured application settings
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured package logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logging.getLogger("order_entry")

