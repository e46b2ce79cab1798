"""Configuration package."""

from cashbook.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    LedgerSettings,
    SchedulerSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "LedgerSettings",
    "SchedulerSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
