"""
Configuration Management for Flux Planner

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The planning functions never read settings themselves; the engine
builds an explicit GeneratorConfig from these values and passes it in.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_names(raw: str) -> list[str]:
    return [name.strip().lower() for name in raw.split(",") if name.strip()]


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

    # One worksheet per entity collection
    transactions_sheet_name: str = Field(default="Transactions")
    obligations_sheet_name: str = Field(default="Obligations")
    purchases_sheet_name: str = Field(default="InstallmentPurchases")
    categories_sheet_name: str = Field(default="Categories")
    cards_sheet_name: str = Field(default="Cards")
    preferences_sheet_name: str = Field(default="Preferences")
    audit_sheet_name: str = Field(default="AuditLog")

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


class EngineSettings(BaseSettings):
    """Planning engine constants."""

    model_config = SettingsConfigDict(
        env_prefix="FLUX_",
        extra="ignore"
    )

    tithe_rate: float = Field(
        default=0.10,
        gt=0.0,
        le=1.0,
        description="Share of eligible income set aside as tithe"
    )
    tithe_due_day: int = Field(default=10, ge=1, le=31)
    default_invoice_due_day: int = Field(
        default=10,
        ge=1,
        le=31,
        description="Invoice due day for cards without a registration"
    )

    # Fallback name matching when no category carries an explicit role
    tithe_category_names: str = Field(
        default="tithe,tithing,dízimo",
        description="Comma-separated conventional names of the tithe category"
    )
    invoice_category_names: str = Field(
        default="card invoice,credit card,fatura cartão",
        description="Comma-separated conventional names of the card invoice category"
    )

    downsample_max_points: int = Field(
        default=12,
        ge=3,
        description="Balance series longer than this are downsampled"
    )
    downsample_target: int = Field(
        default=10,
        ge=1,
        description="Approximate number of interior points kept"
    )

    max_repeat_count: int = Field(
        default=120,
        ge=0,
        description="Upper bound on extra occurrences for one recurring obligation"
    )

    # Transfers between own accounts
    movement_category_names: str = Field(
        default="movement,transfer,movimentação",
        description="Comma-separated conventional names of the movement categories"
    )
    movement_clear_threshold: float = Field(
        default=0.01,
        ge=0.0,
        description="A movement balance at or below this is removed"
    )

    @property
    def tithe_category_names_list(self) -> list[str]:
        return _split_names(self.tithe_category_names)

    @property
    def invoice_category_names_list(self) -> list[str]:
        return _split_names(self.invoice_category_names)

    @property
    def movement_category_names_list(self) -> list[str]:
        return _split_names(self.movement_category_names)


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

    calculate_tithing: bool = Field(
        default=True,
        description="Default for the user toggle until preferences are stored"
    )
    use_remote_storage: bool = Field(
        default=True,
        description="Try Google Sheets before falling back to memory"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

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

    for name in ("google_sheets", "engine", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
