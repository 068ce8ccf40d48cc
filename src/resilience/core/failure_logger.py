"""
Failure logger: classify a failure and emit one structured log record for it.

    failure_logger = FailureLogger("payments", context=LogContext(component="checkout"))
    failure_logger.log_failure(exc, "Charging card failed", {"order_id": order.id})

Level is derived from the failure's classification:

| Severity        | Log level |
| --------------- | --------- |
| critical, high  | ERROR     |
| medium          | WARNING   |
| low             | INFO      |

Context is merged in three layers, later layers winning:
  1. the scoped LogContext bound with `bind_log_context()` (request middleware),
  2. the context injected when the FailureLogger was built,
  3. the context passed to the individual call.

`log_failure()` never raises: a broken sink, formatter or serializer must not hide the
failure the caller is reporting.

A failure already reported (e.g. by the retry engine before re-raising) is marked with
`mark_logged()`; outer layers check `was_logged()` so it is not reported twice.
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Mapping

from resilience.config.settings import get_settings
from resilience.core.logging.filters import LogContext, get_log_context
from resilience.exceptions.base import as_error_payload
from resilience.exceptions.classifier import Classification, Severity, classify, describe_failure

SEVERITY_LEVELS = {
    Severity.CRITICAL: logging.ERROR,
    Severity.HIGH: logging.ERROR,
    Severity.MEDIUM: logging.WARNING,
    Severity.LOW: logging.INFO,
}


def level_for(classification: Classification) -> int:
    return SEVERITY_LEVELS.get(classification.severity, logging.ERROR)


LOGGED_MARKER = "__failure_logged__"


def mark_logged(error: Any) -> None:
    try:
        setattr(error, LOGGED_MARKER, True)
    except (AttributeError, TypeError):
        # plain values and slotted objects cannot carry the mark
        pass


def was_logged(error: Any) -> bool:
    return getattr(error, LOGGED_MARKER, False) is True


@dataclass(frozen=True)
class FailureRecord:
    """One structured log entry, built per call and discarded after emission."""

    level: int
    message: str
    timestamp: str
    context: Mapping[str, Any] = field(default_factory=dict)
    classification: Classification | None = None
    error: Mapping[str, Any] | None = None
    trace_id: str | None = None
    user_id: str | None = None
    session_id: str | None = None

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "level": self.level_name,
            "message": self.message,
            "timestamp": self.timestamp,
            "context": dict(self.context),
        }
        if self.classification is not None:
            data["classification"] = self.classification.to_dict()
        if self.error is not None:
            data["error"] = dict(self.error)
        for name in ("trace_id", "user_id", "session_id"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


def serialize_error(error: Any, *, include_stack: bool) -> dict[str, Any]:
    """
    Structured errors keep code/message/details; generic exceptions keep name/message and,
    outside production, the formatted traceback.
    """
    payload = as_error_payload(error)
    if payload is not None:
        data: dict[str, Any] = {"type": "StructuredError", "code": payload.code_value, "message": payload.message}
        if payload.details:
            data["details"] = payload.details
        return data

    name, message = describe_failure(error)
    data = {"type": "Exception", "name": name, "message": message}
    if include_stack and isinstance(error, BaseException):
        data["stack"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return data


def default_message(error: Any) -> str:
    payload = as_error_payload(error)
    if payload is not None:
        return f"API Error: {payload.code_value} - {payload.message}"
    name, message = describe_failure(error)
    return f"Error: {name} - {message}"


class FailureLogger:
    """
    Structured failure logger bound to a stdlib logger and an injected LogContext.

    Args:
        name: stdlib logger name (ignored when `logger` is given).
        context: LogContext injected at the call boundary (component, user, ...).
        is_production: hides stack traces and enables the monitoring sink; defaults to
            Settings.is_production.
        monitoring_sink: optional callable receiving ERROR-level FailureRecords in
            production (e.g. forwarding to an error-tracking service).
        logger: explicit stdlib logger.
    """

    def __init__(
        self,
        name: str = "resilience.failures",
        *,
        context: LogContext | None = None,
        is_production: bool | None = None,
        monitoring_sink: Callable[[FailureRecord], Any] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.logger = logger or logging.getLogger(name)
        self.context = context or LogContext()
        self.is_production = get_settings().is_production if is_production is None else is_production
        self.monitoring_sink = monitoring_sink

    def with_context(self, **values: Any) -> "FailureLogger":
        """Return a new FailureLogger whose injected context also carries `values`."""
        return FailureLogger(
            context=self.context.merge(values),
            is_production=self.is_production,
            monitoring_sink=self.monitoring_sink,
            logger=self.logger,
        )

    # ------------------------
    # Record building / emission
    # ------------------------
    def _merged_context(self, context: Mapping[str, Any] | None) -> LogContext:
        return get_log_context().merge(self.context).merge(context)

    def build_record(
        self,
        level: int,
        message: str,
        context: Mapping[str, Any] | None = None,
        *,
        error: Any = None,
        classification: Classification | None = None,
    ) -> FailureRecord:
        merged = self._merged_context(context)
        return FailureRecord(
            level=level,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat(),
            context=merged.to_dict(),
            classification=classification,
            error=serialize_error(error, include_stack=not self.is_production) if error is not None else None,
            trace_id=merged.trace_id,
            user_id=merged.user_id,
            session_id=merged.session_id,
        )

    def _emit(self, record: FailureRecord, exc_info: BaseException | None = None) -> None:
        extra: dict[str, Any] = {"context": dict(record.context), "failure_timestamp": record.timestamp}
        if record.classification is not None:
            extra["classification"] = record.classification.to_dict()
            extra["severity"] = record.classification.severity.value
        if record.error is not None:
            extra["error"] = dict(record.error)
        if record.trace_id is not None:
            extra["request_id"] = record.trace_id
        if record.user_id is not None:
            extra["user_id"] = record.user_id
        if record.session_id is not None:
            extra["session_id"] = record.session_id

        self.logger.log(record.level, record.message, extra=extra, exc_info=exc_info)

        if self.monitoring_sink is not None and self.is_production and record.level >= logging.ERROR:
            self.monitoring_sink(record)

    # ------------------------
    # Public API
    # ------------------------
    def log_failure(
        self,
        error: Any,
        message: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        """
        Classify `error`, pick the level from its severity and emit one record.
        Never raises.
        """
        try:
            classification = classify(error)
            record = self.build_record(
                level_for(classification),
                message or default_message(error),
                context,
                error=error,
                classification=classification,
            )
            self._emit(record)
        except Exception:
            # Logging must never mask the caller's failure.
            pass

    def log_warning(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        self._log_plain(logging.WARNING, message, context)

    def log_info(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        self._log_plain(logging.INFO, message, context)

    def log_debug(self, message: str, context: Mapping[str, Any] | None = None) -> None:
        # debug output is a development aid only
        if self.is_production:
            return
        self._log_plain(logging.DEBUG, message, context)

    def _log_plain(self, level: int, message: str, context: Mapping[str, Any] | None) -> None:
        try:
            self._emit(self.build_record(level, message, context))
        except Exception:
            pass


@lru_cache()
def get_failure_logger() -> FailureLogger:
    """Process-wide default FailureLogger (immutable; context comes from contextvars)."""
    return FailureLogger()


def log_failure(error: Any, message: str | None = None, context: Mapping[str, Any] | None = None) -> None:
    """Classify and log `error` with the default FailureLogger. Never raises."""
    try:
        get_failure_logger().log_failure(error, message, context)
    except Exception:
        pass


__all__ = [
    "FailureLogger",
    "FailureRecord",
    "SEVERITY_LEVELS",
    "level_for",
    "serialize_error",
    "default_message",
    "get_failure_logger",
    "log_failure",
    "mark_logged",
    "was_logged",
]
