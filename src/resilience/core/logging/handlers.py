# src/resilience/core/logging/handlers.py
"""
Handler factories for logging.dictConfig.

Each function returns a handler configuration dict; builder.py assembles them. The
formatter and filter names referenced here ("json", "standard", "log_context",
"redact") must exist in the dictConfig built by builder.make_dict_config().
"""

from pathlib import Path

_FILTERS = ["log_context", "redact"]


def _formatter_name(settings) -> str:
    return "json" if settings.LOG_FORMAT == "json" else "standard"


def _log_path(settings, suffix: str) -> str:
    # one file pair per service: <service>.log and <service>.errors.log
    service = getattr(settings, "SERVICE_NAME", "resilience")
    return str(Path(settings.LOG_DIR) / f"{service}{suffix}")


def get_console_handler(settings) -> dict:
    """
    Stream handler (stderr) honoring LOG_FORMAT and LOG_LEVEL.
    """
    return {
        "class": "logging.StreamHandler",
        "formatter": _formatter_name(settings),
        "level": settings.LOG_LEVEL,
        "filters": list(_FILTERS),
    }


def get_file_handler(settings) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": _formatter_name(settings),
        "level": settings.LOG_LEVEL,
        "filename": _log_path(settings, ".log"),
        "maxBytes": settings.LOG_MAX_BYTES,
        "backupCount": settings.LOG_BACKUP_COUNT,
        "encoding": "utf-8",
        "filters": list(_FILTERS),
    }


# Error-only rotating file, always JSON so it can be ingested for alerting.
def get_error_file_handler(settings) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "json",
        "level": "ERROR",
        "filename": _log_path(settings, ".errors.log"),
        "maxBytes": settings.LOG_MAX_BYTES,
        "backupCount": settings.LOG_BACKUP_COUNT,
        "encoding": "utf-8",
        "filters": list(_FILTERS),
    }


def get_error_console_handler(settings) -> dict:
    return {
        "class": "logging.StreamHandler",
        "formatter": "json",
        "level": "ERROR",
        "filters": list(_FILTERS),
    }
