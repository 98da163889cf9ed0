"""Application configuration powered by ``pydantic-settings``."""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_PREFIX = "CLINIC_DASHBOARD_"


class AppSettings(BaseSettings):
    """Runtime configuration for the FastAPI application instance."""

    service_name: str = Field(
        default="clinic_dashboard",
        description="Human friendly identifier used in metadata and logging.",
        validation_alias=AliasChoices("CLINIC_DASHBOARD_SERVICE_NAME", "SERVICE_NAME"),
    )
    host: str = Field(
        default="0.0.0.0",
        description="Hostname or interface the HTTP server binds to.",
        validation_alias=AliasChoices("CLINIC_DASHBOARD_HOST", "HOST"),
    )
    port: int = Field(
        default=8010,
        description="Port the HTTP server listens on.",
        validation_alias=AliasChoices("CLINIC_DASHBOARD_PORT", "PORT"),
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class DatabaseSettings(BaseSettings):
    """Record store connectivity configuration."""

    url: str | None = Field(
        default=None,
        description=(
            "SQLAlchemy async database URL. When unset the service keeps records "
            "in memory."
        ),
        validation_alias=AliasChoices("CLINIC_DASHBOARD_DATABASE_URL", "DATABASE_URL"),
    )
    bootstrap_schema: bool = Field(
        default=False,
        description="Create the record tables on startup when they do not exist.",
        validation_alias=AliasChoices(
            "CLINIC_DASHBOARD_DATABASE_BOOTSTRAP_SCHEMA", "DATABASE_BOOTSTRAP_SCHEMA"
        ),
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class LoggingSettings(BaseSettings):
    """Logging configuration for the service."""

    level: str = Field(
        default="info",
        description="Logging verbosity level (e.g. debug, info, warning).",
        validation_alias=AliasChoices("CLINIC_DASHBOARD_LOG_LEVEL", "LOG_LEVEL"),
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class RecordStoreSettings(BaseSettings):
    """Timeout and retry behaviour for record store calls."""

    call_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for a single record store call.",
    )
    read_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts made for idempotent reads before giving up.",
    )
    initial_backoff_seconds: float = Field(default=0.2, ge=0)
    max_backoff_seconds: float = Field(default=2.0, ge=0)

    model_config = SettingsConfigDict(env_prefix=f"{_ENV_PREFIX}RECORDS_", extra="ignore")


class IngestionSettings(BaseSettings):
    """Configuration driving spreadsheet ingestion behaviour."""

    max_reported_errors: int = Field(
        default=10,
        ge=0,
        description="Number of row errors listed verbatim in an upload summary.",
    )
    default_product_name: str = Field(
        default="Medical Cannabis",
        description="Product label used when a sheet has no product column.",
    )
    dedupe_reports: bool = Field(
        default=False,
        description=(
            "Skip rows whose patient, vendor and month already have a stored report."
        ),
    )
    compensate_on_failure: bool = Field(
        default=False,
        description=(
            "Delete patients created during a run when the final report insert fails."
        ),
    )
    natural_key_prefix: str = Field(
        default="K",
        description="Prefix for natural keys generated for name-matched patients.",
    )

    model_config = SettingsConfigDict(
        env_prefix=f"{_ENV_PREFIX}INGESTION_", extra="ignore"
    )


class AnalyticsSettings(BaseSettings):
    """Patient category axis and inactivity thresholds."""

    categories: list[str] = Field(
        default_factory=lambda: ["Veteran", "Civilian"],
        description="Ordered patient categories reported on by the dashboard.",
    )
    non_ordering_thresholds: dict[str, int] = Field(
        default_factory=lambda: {"Veteran": 2, "Civilian": 3},
        description="Months without a report before a patient counts as non-ordering.",
    )
    never_ordered_months: int = Field(
        default=12,
        ge=0,
        description="Inactivity assigned to patients without any report.",
    )
    default_category: str = Field(
        default="Veteran",
        description="Category assigned to patients created by ingestion.",
    )

    model_config = SettingsConfigDict(
        env_prefix=f"{_ENV_PREFIX}ANALYTICS_", extra="ignore"
    )

    @model_validator(mode="after")
    def validate_thresholds(self) -> "AnalyticsSettings":
        """Every configured category needs a threshold."""

        missing = [name for name in self.categories if name not in self.non_ordering_thresholds]
        if missing:
            raise ValueError(
                "non_ordering_thresholds is missing categories: " + ", ".join(missing)
            )
        if self.default_category not in self.categories:
            raise ValueError("default_category must be one of the configured categories")
        return self


class Settings(BaseSettings):
    """Top-level application settings namespace."""

    app: AppSettings = Field(default_factory=AppSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    records: RecordStoreSettings = Field(default_factory=RecordStoreSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)

    model_config = SettingsConfigDict(
        env_prefix=_ENV_PREFIX,
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance for application use."""

    return Settings()


__all__ = [
    "AnalyticsSettings",
    "AppSettings",
    "DatabaseSettings",
    "IngestionSettings",
    "LoggingSettings",
    "RecordStoreSettings",
    "Settings",
    "get_settings",
]
