"""
Environment configuration loader with validation for the booking engine.
"""

import os
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

LOCK_BACKENDS = ("local", "valkey")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


class BookingEngineConfig(BaseModel):
    """Configuration model for the booking engine with validation."""

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///skybooker.db", description="Database connection URL"
    )

    # Receipt storage
    receipts_dir: str = Field(
        default="uploads/receipts", description="Directory receipt PDFs are written to"
    )
    receipts_url_prefix: str = Field(
        default="/uploads/receipts", description="Web path prefix stored on bookings"
    )

    # Pricing defaults when the payment account leaves rates unset
    default_tax_rate: float = Field(default=0.13, ge=0.0, le=1.0)
    default_service_fee_rate: float = Field(default=0.04, ge=0.0, le=1.0)

    # Email
    brand_name: str = Field(default="SkyBooker", description="Name used in emails and receipts")
    mail_from_bookings: str = Field(default='"SkyBooker" <bookings@skybooker.com>')
    mail_from_updates: str = Field(default='"SkyBooker" <updates@skybooker.com>')
    mail_from_payments: str = Field(default='"SkyBooker Payments" <payments@skybooker.com>')
    smtp_host: Optional[str] = Field(default=None, description="SMTP relay host")
    smtp_port: int = Field(default=587, ge=1, le=65535, description="SMTP relay port")
    smtp_user: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_use_ssl: bool = Field(default=False, description="Connect with implicit TLS")
    smtp_starttls: bool = Field(default=True, description="Upgrade plain connections with STARTTLS")
    smtp_timeout: int = Field(default=10, ge=1, description="SMTP socket timeout in seconds")

    # Per-booking write serialization
    lock_backend: str = Field(default="local", description="'local' or 'valkey'")
    lock_ttl_seconds: int = Field(default=30, ge=1, description="Valkey lock TTL in seconds")
    lock_timeout_seconds: float = Field(default=10.0, gt=0, description="Max wait for a Valkey lock")
    valkey_host: str = Field(default="localhost", description="Valkey server host")
    valkey_port: int = Field(default=6379, ge=1, le=65535, description="Valkey server port")
    valkey_password: Optional[str] = Field(default=None, description="Valkey server password")
    valkey_database: int = Field(default=0, ge=0, le=15, description="Valkey database number")

    # Runtime
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("lock_backend")
    @classmethod
    def validate_lock_backend(cls, v: str) -> str:
        """Validate the lock backend name."""
        if v.lower() not in LOCK_BACKENDS:
            raise ValueError(f"Lock backend must be one of: {list(LOCK_BACKENDS)}")
        return v.lower()

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host)


def load_config(env_file: Optional[str] = None) -> BookingEngineConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Optional path to .env file. If None, looks for .env in current directory.

    Returns:
        BookingEngineConfig: Validated configuration object

    Raises:
        ValueError: If configuration is invalid
    """
    if env_file is None:
        env_file = ".env"

    if os.path.exists(env_file):
        load_dotenv(env_file)

    config_data: Dict[str, Any] = {
        "database_url": os.getenv("DATABASE_URL", "sqlite:///skybooker.db"),
        "receipts_dir": os.getenv("RECEIPTS_DIR", "uploads/receipts"),
        "receipts_url_prefix": os.getenv("RECEIPTS_URL_PREFIX", "/uploads/receipts"),
        "default_tax_rate": float(os.getenv("DEFAULT_TAX_RATE", "0.13")),
        "default_service_fee_rate": float(os.getenv("DEFAULT_SERVICE_FEE_RATE", "0.04")),
        "brand_name": os.getenv("BRAND_NAME", "SkyBooker"),
        "mail_from_bookings": os.getenv("MAIL_FROM_BOOKINGS", '"SkyBooker" <bookings@skybooker.com>'),
        "mail_from_updates": os.getenv("MAIL_FROM_UPDATES", '"SkyBooker" <updates@skybooker.com>'),
        "mail_from_payments": os.getenv(
            "MAIL_FROM_PAYMENTS", '"SkyBooker Payments" <payments@skybooker.com>'
        ),
        "smtp_host": os.getenv("SMTP_HOST") or None,
        "smtp_port": int(os.getenv("SMTP_PORT", "587")),
        "smtp_user": os.getenv("SMTP_USER") or None,
        "smtp_password": os.getenv("SMTP_PASSWORD") or None,
        "smtp_use_ssl": _env_flag("SMTP_USE_SSL", "false"),
        "smtp_starttls": _env_flag("SMTP_STARTTLS", "true"),
        "smtp_timeout": int(os.getenv("SMTP_TIMEOUT", "10")),
        "lock_backend": os.getenv("BOOKING_LOCK_BACKEND", "local"),
        "lock_ttl_seconds": int(os.getenv("BOOKING_LOCK_TTL_SECONDS", "30")),
        "lock_timeout_seconds": float(os.getenv("BOOKING_LOCK_TIMEOUT_SECONDS", "10")),
        "valkey_host": os.getenv("VALKEY_HOST", "localhost"),
        "valkey_port": int(os.getenv("VALKEY_PORT", "6379")),
        "valkey_password": os.getenv("VALKEY_PASSWORD") or None,
        "valkey_database": int(os.getenv("VALKEY_DATABASE", "0")),
        "debug": _env_flag("SKYBOOKER_DEBUG", "false"),
        "log_level": os.getenv("SKYBOOKER_LOG_LEVEL", "INFO"),
    }

    try:
        return BookingEngineConfig(**config_data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")


def validate_required_settings(config: BookingEngineConfig) -> None:
    """
    Validate that required settings are present.

    Args:
        config: Configuration object to validate

    Raises:
        ValueError: If required settings are missing
    """
    if not config.database_url:
        raise ValueError("DATABASE_URL is required")

    if not config.receipts_dir:
        raise ValueError("RECEIPTS_DIR is required")

    if config.lock_backend == "valkey" and not config.valkey_host:
        raise ValueError("VALKEY_HOST is required when BOOKING_LOCK_BACKEND=valkey")


# Global configuration instance
_config: Optional[BookingEngineConfig] = None


def get_config() -> BookingEngineConfig:
    """
    Get the global configuration instance, loading it if necessary.

    Returns:
        BookingEngineConfig: The global configuration object
    """
    global _config
    if _config is None:
        _config = load_config()
        validate_required_settings(_config)
    return _config
