# src/resilience/core/logging/builder.py
"""
Turn Settings into a `logging.config.dictConfig` mapping and apply it.

Where records go depends on LOG_TO_STDOUT / LOG_DIR:

| LOG_TO_STDOUT | LOG_DIR set    | Active handlers                     |
| ------------- | -------------- | ----------------------------------- |
| true          | doesn't matter | console + error_console             |
| false         | not set        | console + error_console             |
| false         | set            | console + file + error_file         |

Failure records (`resilience.failures`) are never filtered below WARNING, even when
LOG_LEVEL is stricter, so retry exhaustion and fast failures always reach the error
streams.

Any object exposing ENV, LOG_LEVEL, LOG_FORMAT, LOG_TO_STDOUT, LOG_DIR, LOG_MAX_BYTES,
LOG_BACKUP_COUNT and ENABLE_SQL_LOGGING works as `settings` (SERVICE_NAME optional).
"""

import logging
import logging.config
from pathlib import Path

from .filters import LogContextFilter, RedactFilter
from .formatters import ColorFormatter, JsonFormatter
from .handlers import (
    get_console_handler,
    get_error_console_handler,
    get_error_file_handler,
    get_file_handler,
)

FAILURE_LOGGER_NAME = "resilience.failures"
LINE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(request_id)s | %(message)s"


def _writes_files(settings) -> bool:
    return (not settings.LOG_TO_STDOUT) and bool(settings.LOG_DIR)


def _build_handlers(settings) -> dict[str, dict]:
    handlers = {"console": get_console_handler(settings)}
    if _writes_files(settings):
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)
    return handlers


def _failure_level(settings) -> str:
    level = logging.getLevelName(settings.LOG_LEVEL)
    return settings.LOG_LEVEL if isinstance(level, int) and level <= logging.WARNING else "WARNING"


def _build_loggers(settings, handler_names: list[str]) -> dict[str, dict]:
    return {
        "": {"handlers": handler_names, "level": settings.LOG_LEVEL},
        # package loggers propagate to root; only their thresholds differ
        "resilience": {"level": settings.LOG_LEVEL, "propagate": True},
        FAILURE_LOGGER_NAME: {"level": _failure_level(settings), "propagate": True},
        "uvicorn.error": {"level": settings.LOG_LEVEL, "handlers": handler_names, "propagate": False},
        "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
        # SQL statements may carry sensitive parameters
        "sqlalchemy.engine": {
            "level": "DEBUG" if settings.ENABLE_SQL_LOGGING else "WARNING",
            "handlers": ["console"],
            "propagate": False,
        },
    }


def make_dict_config(settings) -> dict:
    """
    Build the dictConfig mapping for `settings`.

    Formatters "standard" (ColorFormatter for LOG_FORMAT=text) and "json"; filters
    "log_context" and "redact" on every handler; loggers for the root, the package,
    failure records, uvicorn and sqlalchemy.
    """
    handlers = _build_handlers(settings)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "()": ColorFormatter if settings.LOG_FORMAT == "text" else logging.Formatter,
                "format": LINE_FORMAT,
            },
            "json": {
                "()": JsonFormatter,
                "env": settings.ENV,
                "service": getattr(settings, "SERVICE_NAME", "resilience"),
            },
        },
        "filters": {
            "log_context": {"()": LogContextFilter},
            "redact": {"()": RedactFilter},
        },
        "handlers": handlers,
        "loggers": _build_loggers(settings, list(handlers)),
    }


def setup_logging(settings) -> None:
    """
    Apply the configuration built from `settings`, creating LOG_DIR first when logs go
    to files. A LogContextFilter is also attached to the root logger itself so records
    logged on it directly carry request_id.
    """
    if _writes_files(settings):
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(make_dict_config(settings))

    root = logging.getLogger()
    if not any(isinstance(f, LogContextFilter) for f in root.filters):
        root.addFilter(LogContextFilter())
