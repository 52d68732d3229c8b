"""Public API for shared Playshelf configuration utilities."""

from .loader import load_settings
from .models import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_STORAGE_PATH,
    ApiSettings,
    AuthSettings,
    CacheSettings,
    LoggingSettings,
    PlayshelfSettings,
    StorageSettings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_STORAGE_PATH",
    "ApiSettings",
    "AuthSettings",
    "CacheSettings",
    "LoggingSettings",
    "PlayshelfSettings",
    "StorageSettings",
    "load_settings",
]
