"""Configuration package."""

from expense_sync.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    LocalStoreSettings,
    Settings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "LocalStoreSettings",
    "Settings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
