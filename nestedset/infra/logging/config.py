"""dictConfig-based logging setup.

The library itself only creates ``nestedset.*`` loggers and never attaches
handlers; applications (and the test suite) call ``setup_logging`` once to
route everything through a single stderr handler, as JSON Lines or text.
"""

from __future__ import annotations

import logging
import logging.config
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from nestedset.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)
_LOGGING_INITIALIZED = False

_JSON_KEYS = {"level": "levelname", "logger": "name", "message": "message"}


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **overrides: Any,
) -> None:
    """Configure logging from ``LoggingSettings`` unless already done.

    Args:
        log_settings: Settings to apply; ``get_logging_settings()`` when omitted.
        force: Apply again even after a previous call.
        **overrides: Keyword arguments replacing individual settings values.
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    if log_settings is None:
        from nestedset.core.settings import get_logging_settings

        log_settings = get_logging_settings()

    configure_logging(**{**log_settings.to_logging_kwargs(), **overrides})
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    console_enabled: bool = True,
    include_function_name: bool = False,
    capture_warnings: bool = True,
    service_name: str = "nestedset",
    **unused: Any,
) -> None:
    """Apply a root-logger configuration.

    Unknown keyword arguments are accepted and reported at DEBUG so settings
    files with extra keys do not break startup.
    """
    logging.config.dictConfig(
        build_logging_config(
            log_level=log_level,
            json_logs=json_logs,
            console_enabled=console_enabled,
            include_function_name=include_function_name,
            service_name=service_name,
        )
    )
    logging.captureWarnings(capture_warnings)
    if unused:
        logger.debug("Ignoring logging options: %s", ", ".join(sorted(unused)))


def build_logging_config(
    *,
    log_level: str,
    json_logs: bool,
    console_enabled: bool,
    include_function_name: bool,
    service_name: str,
) -> dict[str, Any]:
    """Return the ``dictConfig`` dictionary for the given options."""
    if json_logs:
        keys = dict(_JSON_KEYS)
        if include_function_name:
            keys["function"] = "funcName"
        formatter: dict[str, Any] = {
            "()": "nestedset.infra.logging.formatters.JSONFormatter",
            "fmt_keys": keys,
            "static": {"service": service_name},
        }
    else:
        fields = ["%(asctime)s", "%(levelname)s", "%(name)s"]
        if include_function_name:
            fields.append("%(funcName)s")
        formatter = {
            "format": " - ".join([*fields, "%(message)s"]),
            "datefmt": "%Y-%m-%d %H:%M:%S",
        }

    handlers: dict[str, Any] = {}
    if console_enabled:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stderr",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": handlers,
        "root": {"level": log_level.upper(), "handlers": list(handlers)},
    }
