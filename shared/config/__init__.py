"""Configuration package for the clinic dashboard."""

from .settings import (
    AnalyticsSettings,
    AppSettings,
    DatabaseSettings,
    IngestionSettings,
    LoggingSettings,
    RecordStoreSettings,
    Settings,
    get_settings,
)

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
