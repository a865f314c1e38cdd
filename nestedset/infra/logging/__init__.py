"""Logging infrastructure.

Example:
    from nestedset.infra.logging import setup_logging, get_lazy_logger

    setup_logging()  # reads LOG_* settings once
    logger = get_lazy_logger(__name__)
    logger.debug(lambda: f"tree={tree_dump()}")
"""

from .config import build_logging_config, configure_logging, setup_logging
from .formatters import JSONFormatter
from .lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "JSONFormatter",
    "LazyLoggerAdapter",
    "build_logging_config",
    "configure_logging",
    "get_lazy_logger",
    "setup_logging",
]
