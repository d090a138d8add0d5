"""
Configuration Management for CoinPilot

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


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

    # Sheet names within the spreadsheet
    expenses_sheet_name: str = Field(
        default="Expenses",
        description="Name of the sheet for recurring expenses"
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

    home_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO code of the currency all amounts are denominated in"
    )

    # Engine behaviour
    strict_frequency: bool = Field(
        default=True,
        description=(
            "Reject unknown frequencies. When False, unknown values are "
            "treated as monthly and a warning is logged."
        )
    )
    reactivation_catch_up: str = Field(
        default="single",
        pattern="^(single|full)$",
        description=(
            "How far auto-reactivation advances a stale due date: one step "
            "('single') or until it is no longer in the past ('full')"
        )
    )
    due_soon_days: int = Field(
        default=3,
        ge=0,
        le=31,
        description="An unpaid expense due within this many days is 'due soon'"
    )
    default_budget_plan: str = Field(
        default="50-30-20",
        description="Preset budget plan used when none is chosen"
    )

    # Validation thresholds
    max_expense_amount: float = Field(
        default=100000.0,
        gt=0,
        description="Amount above which an expense is flagged for review"
    )
    stale_due_date_days: int = Field(
        default=365,
        ge=1,
        description="Due dates older than this many days are flagged for review"
    )

    @property
    def full_catch_up(self) -> bool:
        return self.reactivation_catch_up == "full"


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
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
