"""
Ledgerflow settings

Every knob is read from the environment (or a local .env file) through
pydantic-settings, grouped by concern:

    LEDGER_*          calendar windows, feed paging, editor warnings
    GOOGLE_SHEETS_*   persistent store and audit trail
    LOG_LEVEL         structured log threshold

Sub-settings are built on first access, so the in-memory setup runs
without any Google credentials present.
"""

import warnings
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Aggregation and pagination behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Calendar windows
    week_start: int = Field(
        default=0,
        ge=0,
        le=6,
        description="First day of the week (0=Monday ... 6=Sunday)"
    )
    timezone: str = Field(
        default="UTC",
        description="IANA timezone the week/month windows are computed in"
    )
    projection_days: int = Field(
        default=7,
        ge=0,
        le=366,
        description="Horizon for the projected income figure"
    )

    # Feed
    page_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Records requested per kind on each 'load more'"
    )

    # Non-blocking sanity thresholds for the editor
    max_reasonable_amount: float = Field(
        default=1_000_000.0,
        gt=0,
        description="Amounts above this produce a warning"
    )
    future_date_tolerance_days: int = Field(
        default=366,
        ge=0,
        description="How far in the future a record date can be before warning"
    )

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown zone names early."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

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

    # Sheet names within the spreadsheet, one per record kind
    incomes_sheet_name: str = Field(default="Incomes")
    expenses_sheet_name: str = Field(default="Expenses")
    bills_sheet_name: str = Field(default="Bills")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """A missing key file only warns; it may be mounted after start-up."""
        if not Path(v).exists():
            warnings.warn(f"Service account key not found at {v}; Sheets storage will not connect.")
        return v


class AppSettings(BaseSettings):
    """Process-wide settings that are not tied to one component."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for structured logs"
    )


class Settings(BaseSettings):
    """Entry point handing out the grouped settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings; `get_settings.cache_clear()` forces a reload."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to build each settings group.

    Returns {group: ok}, plus a `{group}_error` message for each group
    that failed, so start-up can report every problem at once.
    """
    settings = get_settings()
    results: dict = {}

    for name in ("ledger", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
