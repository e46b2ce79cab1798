"""
Configuration Management for Cashbook

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what knobs the ledger and scheduler expose and
ensures all required configuration is validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger Core configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    auto_approval_threshold: Decimal = Field(
        default=Decimal("1000000"),
        gt=0,
        description="Amounts strictly below this are approved on creation"
    )
    reference_prefix: str = Field(
        default="TRX",
        min_length=1,
        max_length=10,
        pattern="^[A-Z0-9]+$",
        description="Prefix of generated reference codes"
    )
    reference_allocation_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts at allocating a unique reference code"
    )
    reference_allocation_wait_seconds: float = Field(
        default=0.1,
        ge=0.0,
        le=5.0,
        description="Fixed wait between reference allocation attempts"
    )


class SchedulerSettings(BaseSettings):
    """Recurring schedule driver configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        extra="ignore"
    )

    poll_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Seconds between polling passes (hourly by default)"
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Maximum templates materialized concurrently"
    )
    claim_timeout_seconds: int = Field(
        default=900,
        ge=1,
        description="Age after which a worker claim is considered stale"
    )
    reminder_days_ahead: int = Field(
        default=3,
        ge=0,
        le=31,
        description="How far ahead to look for upcoming-run reminders"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets audit storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Root log level"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def scheduler(self) -> SchedulerSettings:
        return SchedulerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an
    ``<name>_error`` entry for every failing section.
    """
    results = {}
    settings = get_settings()

    for name in ("ledger", "scheduler", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
