"""Configuration package."""

from balanceview.config.settings import (
    AppSettings,
    AuthSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    LegacyRetention,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "AuthSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "LegacyRetention",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
