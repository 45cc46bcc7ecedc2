"""Configuration package."""

from money_manager.config.settings import (
    ApiSettings,
    AppSettings,
    Settings,
    StorageSettings,
    get_settings,
)

__all__ = [
    "ApiSettings",
    "AppSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
]
