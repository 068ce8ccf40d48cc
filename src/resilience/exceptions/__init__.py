# resilience/
# │
# ├── exceptions/
# │   ├── __init__.py
# │   ├── codes.py          # ErrorCode taxonomy + HTTP status table
# │   ├── base.py           # ErrorPayload / StructuredError and core error types
# │   ├── classifier.py     # classify(): failure -> Classification
# │   └── storage.py        # Map SQLAlchemy errors to structured errors

from .codes import ErrorCode, ERROR_STATUS_MAP, get_status_code, to_error_code
from .base import (
    ErrorPayload,
    StructuredError,
    RetryCancelledError,
    InvalidBackoffError,
    create_error_response,
    is_api_error_response,
    as_error_payload,
)
from .classifier import Severity, Category, Classification, classify

__all__ = [
    "ErrorCode",
    "ERROR_STATUS_MAP",
    "get_status_code",
    "to_error_code",
    "ErrorPayload",
    "StructuredError",
    "RetryCancelledError",
    "InvalidBackoffError",
    "create_error_response",
    "is_api_error_response",
    "as_error_payload",
    "Severity",
    "Category",
    "Classification",
    "classify",
]
