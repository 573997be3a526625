"""
Configuration Management for Expense Sync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

import warnings
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LocalStoreSettings(BaseSettings):
    """On-device storage locations."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSE_SYNC_LOCAL_",
        extra="ignore"
    )

    database_path: str = Field(
        default="expenses.sqlite3",
        description="SQLite file for expense records (':memory:' for tests)"
    )
    preferences_path: str = Field(
        default="preferences.json",
        description="JSON preference file holding the payment mode catalog"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote store configuration."""

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
        description="ID of the spreadsheet that holds every user collection"
    )

    # One worksheet per user scope: <collection_prefix><user_id>
    collection_prefix: str = Field(
        default="expenses_",
        description="Worksheet name prefix for per-user collections"
    )
    poll_interval_seconds: float = Field(
        default=15.0,
        ge=1.0,
        le=3600.0,
        description="How often the live subscription re-reads the worksheet"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class SyncSettings(BaseSettings):
    """Sync engine behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSE_SYNC_",
        extra="ignore"
    )

    auto_sign_in: bool = Field(
        default=True,
        description="Acquire an anonymous session on start when none is active"
    )
    session_path: str = Field(
        default="session.json",
        description="File remembering the anonymous user id of this device"
    )
    journal_size: int = Field(
        default=500,
        ge=10,
        le=100000,
        description="How many sync events to keep in memory"
    )


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
        description="Enable debug logging"
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

    # Loaded lazily so that a device without cloud credentials still runs offline

    @property
    def local(self) -> LocalStoreSettings:
        return LocalStoreSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

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

    Returns a dict of {setting_name: is_valid}, plus "<name>_error"
    entries describing failures. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("local", "google_sheets", "sync", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
