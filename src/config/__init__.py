"""Configuration package."""

from src.config.settings import (
    AppSettings,
    ConnectivitySettings,
    OfflineQueueSettings,
    Settings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "ConnectivitySettings",
    "OfflineQueueSettings",
    "Settings",
    "SupabaseSettings",
    "get_settings",
    "validate_all_settings",
]
