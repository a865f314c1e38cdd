"""Lazy evaluation support for logging.

Tree operations log every shift at DEBUG level. Building those messages
(interval snapshots, row counts) is only worth doing when DEBUG is enabled,
so the adapter here accepts callables and evaluates them on demand.
"""

from __future__ import annotations

import logging
from typing import Any


class LazyLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that evaluates callable messages and arguments lazily.

    ``LoggerAdapter.debug/info/warning/error`` all route through ``log``, so
    overriding it covers every level.

    Example:
        ```python
        logger = LazyLoggerAdapter(logging.getLogger(__name__), {})
        logger.debug(lambda: f"shift_values first={first} delta={delta}")
        logger.debug("moved %s", lambda: node_ids(rows))
        ```
    """

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        """Evaluate callables only when ``level`` is enabled, then log."""
        if not self.isEnabledFor(level):
            return
        if callable(msg):
            msg = msg()
        args = tuple(arg() if callable(arg) else arg for arg in args)
        super().log(level, msg, *args, **kwargs)


def get_lazy_logger(name: str, **context: Any) -> LazyLoggerAdapter:
    """Get a lazy-evaluating logger.

    Args:
        name: Logger name (usually __name__).
        **context: Optional context bound as ``extra`` on every record.
    """
    return LazyLoggerAdapter(logging.getLogger(name), context)
