"""Configuration package."""

from finvault.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleDriveSettings,
    LocalStorageSettings,
    Settings,
    get_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleDriveSettings",
    "LocalStorageSettings",
    "Settings",
    "get_settings",
]
