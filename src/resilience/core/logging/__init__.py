# src/resilience/core/logging/
# ├─ __init__.py            # public API
# ├─ builder.py             # make_dict_config(settings) + setup_logging(settings)
# ├─ formatters.py          # JsonFormatter, ColorFormatter
# ├─ filters.py             # LogContext + contextvar helpers, LogContextFilter, RedactFilter
# ├─ handlers.py            # handler config factories (console/file)
# └─ middleware.py          # Starlette middleware binding the request context


from .builder import setup_logging, make_dict_config
from .filters import (
    LogContext,
    LogContextFilter,
    bind_log_context,
    get_log_context,
    set_request_id,
    get_request_id,
)
from .middleware import RequestIDMiddleware

__all__ = [
    "setup_logging",
    "make_dict_config",
    "LogContext",
    "LogContextFilter",
    "bind_log_context",
    "get_log_context",
    "set_request_id",
    "get_request_id",
    "RequestIDMiddleware",
]
