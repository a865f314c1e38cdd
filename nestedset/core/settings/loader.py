"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process.

Testing:
    In tests, clear the cache to force reload:
    get_nested_set_settings.cache_clear()

    Or override with custom values:
    settings = NestedSetSettings(has_many_roots=True)
"""

from __future__ import annotations

from functools import lru_cache

from .database import DatabaseSettings
from .logs import LoggingSettings
from .nested_set import NestedSetSettings


@lru_cache(maxsize=1)
def get_nested_set_settings() -> NestedSetSettings:
    """Get cached nested-set settings.

    Returns:
        Validated and frozen NestedSetSettings instance.
    """
    return NestedSetSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    """Get cached database settings.

    Returns:
        Validated and frozen DatabaseSettings instance.
    """
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


def clear_all_caches() -> None:
    """Clear every settings cache (tests and reloads)."""
    get_nested_set_settings.cache_clear()
    get_db_settings.cache_clear()
    get_logging_settings.cache_clear()
