"""
Configuration Management for DailyMate

Environment-driven settings built on pydantic-settings.

DESIGN DECISION: Every tunable lives in this module. The storage backend,
the Sheets credentials and the reminder defaults are read and validated
in one place before the app touches any data.
"""

import warnings
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Where the finance records live."""

    model_config = SettingsConfigDict(
        env_prefix="DAILYMATE_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: Literal["memory", "json", "google_sheets"] = Field(
        default="json",
        description="Storage backend for the nine record collections"
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory of the JSON collection files (json backend)"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
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

    # Worksheet names within the spreadsheet, one per collection
    accounts_sheet_name: str = "Accounts"
    transactions_sheet_name: str = "Transactions"
    categories_sheet_name: str = "Categories"
    labels_sheet_name: str = "Labels"
    contacts_sheet_name: str = "Contacts"
    budgets_sheet_name: str = "Budgets"
    goals_sheet_name: str = "Goals"
    planned_transactions_sheet_name: str = "Planned Transactions"
    bills_sheet_name: str = "Bills"
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
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

    def sheet_name(self, collection: str) -> str:
        """Worksheet title for a collection name such as ``planned_transactions``."""
        return getattr(self, f"{collection}_sheet_name")


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="DAILYMATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Startup behaviour
    process_planned_on_startup: bool = Field(
        default=True,
        description="Materialize due planned transactions when the app starts"
    )
    reconcile_on_startup: bool = Field(
        default=True,
        description="Replay the transaction log to detect balance drift at startup"
    )
    repair_balance_drift: bool = Field(
        default=False,
        description="Rewrite drifted balances instead of only reporting them"
    )
    auto_pay_bills: bool = Field(
        default=True,
        description="Record payments for due bills that have auto-pay enabled"
    )

    # Reminders
    reminder_hour: int = Field(
        default=9,
        ge=0,
        le=23,
        description="Hour of day reminders fire at"
    )
    default_bill_reminder_days: list[int] = Field(
        default_factory=lambda: [7, 3, 1],
        description="Days before the due date a new bill reminds"
    )
    default_budget_thresholds: list[int] = Field(
        default_factory=lambda: [50, 75, 90, 100],
        description="Budget usage percentages that trigger an alert"
    )

    currency_symbol: str = Field(
        default="₹",
        max_length=3,
        description="Symbol used in reminder messages"
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

    # Sub-settings are loaded lazily so that a JSON-only setup does not need
    # Google credentials.

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Return the process-wide settings.

    Loaded once; tests call get_settings.cache_clear() after changing the
    environment.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Check each settings group can be loaded.

    Returns {group_name: loaded_ok}, plus an error entry for failed
    groups. Google Sheets settings only matter for the sheets backend.
    """
    results = {}

    settings = get_settings()

    for name in ("storage", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValidationError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
