"""Modular Pydantic Settings v2 configuration.

Import settings via cached loaders:
    from nestedset.core.settings import get_nested_set_settings

    settings = get_nested_set_settings()
    print(settings.has_many_roots)

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. YAML/conf.d files (optional, local/dev)
    4. .env file (development only)
    5. secrets_dir (Kubernetes/Docker secrets)
"""

from __future__ import annotations

from .database import DatabaseSettings
from .loader import (
    clear_all_caches,
    get_db_settings,
    get_logging_settings,
    get_nested_set_settings,
)
from .logs import LoggingSettings
from .nested_set import NestedSetSettings

__all__ = [
    "DatabaseSettings",
    "LoggingSettings",
    "NestedSetSettings",
    "clear_all_caches",
    "get_db_settings",
    "get_logging_settings",
    "get_nested_set_settings",
]
