"""
Canonical error codes shared by every caller of the resilience core.

Codes are plain strings on the wire (JSON envelopes, log records), so `ErrorCode`
subclasses `str`: `ErrorCode.NOT_FOUND == "NOT_FOUND"` holds and payloads that
arrive as raw dicts can be compared against the enum without conversion.
"""

from enum import Enum


class ErrorCode(str, Enum):
    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Authentication errors
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_MISSING = "TOKEN_MISSING"

    # Business logic errors
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    RESOURCE_NOT_AVAILABLE = "RESOURCE_NOT_AVAILABLE"
    OPERATION_NOT_ALLOWED = "OPERATION_NOT_ALLOWED"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    DATABASE_ERROR = "DATABASE_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"


ERROR_STATUS_MAP: dict[ErrorCode, int] = {
    # 400 Bad Request
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.BUSINESS_RULE_VIOLATION: 400,
    # 401 Unauthorized
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.TOKEN_EXPIRED: 401,
    ErrorCode.INVALID_TOKEN: 401,
    ErrorCode.TOKEN_MISSING: 401,
    # 403 Forbidden
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.OPERATION_NOT_ALLOWED: 403,
    # 404 Not Found
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.RESOURCE_NOT_AVAILABLE: 404,
    # 409 Conflict
    ErrorCode.CONFLICT: 409,
    # 429 Too Many Requests
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    # 500 Internal Server Error
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.DATABASE_ERROR: 500,
    # 503 Service Unavailable
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.EXTERNAL_SERVICE_ERROR: 503,
}


def to_error_code(code: "ErrorCode | str | None") -> ErrorCode | None:
    """
    Return the ErrorCode member for `code`, or None when the value is not a known code.
    """
    if isinstance(code, ErrorCode):
        return code
    try:
        return ErrorCode(code)
    except ValueError:
        return None


def get_status_code(code: "ErrorCode | str | None") -> int:
    """
    HTTP status for an error code. Unknown codes map to 500.
    """
    known = to_error_code(code)
    if known is None:
        return 500
    return ERROR_STATUS_MAP.get(known, 500)
