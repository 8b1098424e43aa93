"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports two kinds of modes:
    - DEVELOPMENT: in-memory mock order service, JSON file cart cache
    - STAGING / PRODUCTION: remote order API over HTTP, Redis cart cache

The ENV_MODE variable controls which services are instantiated throughout
the application, so the whole table/payment flow can be exercised locally
without a running back-office API.

Usage:
    from backoffice.core.config import get_settings

    settings = get_settings()
    if settings.is_development:
        # Mock order service + file cache
    else:
        # HTTP order service + Redis cache
"""

import logging
import sys
from enum import Enum
from typing import Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing with mock services
        PRODUCTION: Live environment talking to the real back-office API
        STAGING: Pre-production against a staging API
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    The order API token should NEVER be committed to version control.
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
        default="Restaurant Back-Office Order Engine",
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
    # REMOTE ORDER SERVICE
    # ==========================================================================

    order_api_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the back-office order API"
    )
    order_api_prefix: str = Field(
        default="/api/admin",
        description="Path prefix of the admin endpoints"
    )
    order_api_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the order API"
    )
    order_api_timeout: float = Field(
        default=10.0,
        description="Request timeout in seconds"
    )

    # ==========================================================================
    # CART CACHE
    # ==========================================================================

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the cart cache"
    )
    data_directory: str = Field(
        default="data/carts",
        description="Directory for file-backed cart documents"
    )
    cart_lock_timeout: int = Field(
        default=10,
        description="Seconds to wait for a cart file lock"
    )

    # ==========================================================================
    # PAYMENT
    # ==========================================================================

    payment_poll_interval: float = Field(
        default=3.0,
        description="Seconds between payment status polls"
    )
    payment_poll_timeout: float = Field(
        default=600.0,
        description="Seconds after which an unconfirmed payment stops polling"
    )
    async_payment_keywords: str = Field(
        default="sepay,qr",
        description="Comma-separated label keywords of asynchronous payment methods"
    )
    qr_image_base_url: str = Field(
        default="https://qr.sepay.vn/img",
        description="QR image endpoint for bank transfers"
    )
    qr_bank_account: str = Field(
        default="VQRQADFUC9149",
        description="Receiving bank account encoded in the QR payload"
    )
    qr_bank_name: str = Field(
        default="MBBank",
        description="Receiving bank encoded in the QR payload"
    )
    payment_link_url: str = Field(
        default="https://my.sepay.vn/payment-link-demo",
        description="Hosted payment page shown next to the QR code"
    )

    # ==========================================================================
    # BUSINESS CONFIGURATION
    # ==========================================================================

    default_guest_name: str = Field(
        default="Walk-in guest",
        description="Customer name used for orders created at the table"
    )
    default_table_capacity: int = Field(
        default=4,
        description="Capacity assumed when the table does not report one"
    )
    default_user_id: int = Field(
        default=1,
        description="Staff user id used when a request carries none"
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

    @field_validator("payment_poll_interval", "payment_poll_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Polling values must be greater than 0")
        return v

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
    def is_staging(self) -> bool:
        """Check if running in staging mode."""
        return self.env_mode == EnvironmentMode.STAGING

    @property
    def use_real_services(self) -> bool:
        """Check if the remote order API and Redis should be used."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)

    @property
    def async_payment_keywords_list(self) -> list[str]:
        """Get asynchronous payment keywords as a lowercase list."""
        return [
            k.strip().lower()
            for k in self.async_payment_keywords.split(",")
            if k.strip()
        ]

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
            if not self.order_api_token:
                missing.append("ORDER_API_TOKEN")
            if not self.order_api_base_url:
                missing.append("ORDER_API_BASE_URL")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once per process; call ``get_settings.cache_clear()``
    after changing the environment in tests.

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
        Configured application logger
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
    logging.getLogger("filelock").setLevel(logging.WARNING)

    return logging.getLogger("backoffice")

