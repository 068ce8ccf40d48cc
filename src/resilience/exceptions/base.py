"""
Failure values understood by the resilience core.

A failure is one of two things:

  - a structured error: an `ErrorPayload` carrying a canonical `ErrorCode`, a message
    and optional details. It travels either as the payload itself, wrapped in a
    `StructuredError` (so an operation can raise it), or as the JSON envelope
    `{"success": false, "error": {"code": ..., "message": ...}}` returned by an API.
  - anything else: a generic exception, described only by its type name and message.

`as_error_payload()` is the single place that decides which of the two a value is;
the classifier, the retry engine and the failure logger all dispatch on its result.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .codes import ErrorCode, to_error_code


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ErrorPayload:
    """
    Structured error value.

    - code: canonical error code (unknown codes are kept as plain strings)
    - message: human-friendly message (safe to show to clients)
    - details: optional per-field details (list) or free-form mapping
    - trace_id / path: correlation data attached at the HTTP boundary
    - timestamp: ISO-8601 creation time
    """

    code: ErrorCode | str
    message: str
    details: list[Any] | dict[str, Any] | None = None
    trace_id: str | None = None
    path: str | None = None
    timestamp: str = field(default_factory=_utc_now_iso)

    @property
    def code_value(self) -> str:
        return self.code.value if isinstance(self.code, ErrorCode) else str(self.code)

    def to_response(self) -> dict:
        """
        Return the JSON-serializable error envelope used in HTTP responses.

        Shape:
            {
                "success": False,
                "error": {
                    "code": "NOT_FOUND",
                    "message": "...",
                    "timestamp": "2025-01-01T00:00:00+00:00",
                    "details": [...],      # optional
                    "traceId": "...",      # optional
                    "path": "/users/1",    # optional
                },
            }
        """
        error: dict[str, Any] = {
            "code": self.code_value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.details:
            error["details"] = self.details
        if self.trace_id:
            error["traceId"] = self.trace_id
        if self.path:
            error["path"] = self.path
        return {"success": False, "error": error}

    @classmethod
    def from_response(cls, envelope: Mapping) -> "ErrorPayload":
        """Build a payload from an error envelope (see `is_api_error_response`)."""
        error = envelope["error"]
        code = error.get("code")
        return cls(
            code=to_error_code(code) or str(code),
            message=str(error.get("message", "")),
            details=error.get("details"),
            trace_id=error.get("traceId"),
            path=error.get("path"),
            timestamp=error.get("timestamp") or _utc_now_iso(),
        )


def create_error_response(
    code: ErrorCode | str,
    message: str,
    *,
    details: list[Any] | dict[str, Any] | None = None,
    trace_id: str | None = None,
    path: str | None = None,
    timestamp: str | None = None,
) -> ErrorPayload:
    """Convenience constructor mirroring the envelope fields."""
    return ErrorPayload(
        code=code,
        message=message,
        details=details,
        trace_id=trace_id,
        path=path,
        timestamp=timestamp or _utc_now_iso(),
    )


def is_api_error_response(obj: Any) -> bool:
    """
    Type guard for the raw envelope shape: `success is False` and `error` is a mapping
    containing a `code`.
    """
    if not isinstance(obj, Mapping):
        return False
    if obj.get("success") is not False:
        return False
    error = obj.get("error")
    return isinstance(error, Mapping) and "code" in error


class StructuredError(Exception):
    """
    Raisable carrier of one ErrorPayload.

    Operations raise it so structured failures can cross `await` boundaries like any
    other exception; classification looks only at `.payload`.
    """

    def __init__(self, payload: ErrorPayload):
        super().__init__(payload.message)
        self.payload = payload

    @classmethod
    def of(cls, code: ErrorCode | str, message: str, **kwargs) -> "StructuredError":
        return cls(create_error_response(code, message, **kwargs))

    @property
    def code(self) -> ErrorCode | str:
        return self.payload.code

    def __str__(self) -> str:
        return f"{self.payload.message} (code: {self.payload.code_value})"


def as_error_payload(failure: Any) -> ErrorPayload | None:
    """
    Return the structured payload behind `failure`, or None for a generic failure.
    """
    if isinstance(failure, ErrorPayload):
        return failure
    if isinstance(failure, StructuredError):
        return failure.payload
    if is_api_error_response(failure):
        return ErrorPayload.from_response(failure)
    return None


class RetryCancelledError(Exception):
    """
    Raised when a cancellation signal interrupts a retry loop during its backoff wait.

    The failure that triggered the wait is chained as `__cause__` and kept on
    `.last_error`; `.attempt` is the attempt that had just failed.
    """

    def __init__(self, attempt: int, last_error: BaseException | None = None):
        super().__init__(f"Retry cancelled after attempt {attempt}")
        self.attempt = attempt
        self.last_error = last_error


class InvalidBackoffError(ValueError):
    """Raised for backoff parameters outside their domain (negative base, multiplier < 1, ...)."""
    pass


__all__ = [
    "ErrorPayload",
    "StructuredError",
    "RetryCancelledError",
    "InvalidBackoffError",
    "create_error_response",
    "is_api_error_response",
    "as_error_payload",
]
