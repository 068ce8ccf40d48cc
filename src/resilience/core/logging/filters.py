# src/resilience/core/logging/filters.py
"""
Logging filters and the scoped log context.

The failure logger and every plain `logging` call need the same correlation data
(trace id, user id, session id). It is stored in a `contextvars.ContextVar` holding an
immutable `LogContext`, so:

  - it follows the logical flow of a request across `await` boundaries and into
    tasks created with asyncio.create_task / asyncio.gather;
  - concurrent requests never see each other's values (unlike a module-level dict or
    threading.local());
  - binding is scoped: `bind_log_context(...)` restores the previous value on exit.

Usage:

    with bind_log_context(trace_id="req-123", user_id="u-1"):
        logger.info("processing")          # record.request_id == "req-123"

LogContextFilter copies the bound fields onto every LogRecord so formatters can
reference `%(request_id)s` without KeyError. When nothing is bound, request_id is "-".
"""

import contextvars
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from logging import LogRecord
from types import MappingProxyType
from typing import Any, Iterator, Mapping

_CORRELATION_FIELDS = ("trace_id", "user_id", "session_id", "user_agent", "ip", "path", "component", "action")


@dataclass(frozen=True)
class LogContext:
    """
    Immutable correlation context attached to log records.

    `extra` holds free-form key/values (read-only mapping).
    """

    trace_id: str | None = None
    user_id: str | None = None
    session_id: str | None = None
    user_agent: str | None = None
    ip: str | None = None
    path: str | None = None
    component: str | None = None
    action: str | None = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self):
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> "LogContext":
        """Split a flat mapping into known correlation fields and `extra`."""
        if not values:
            return cls()
        known = {k: v for k, v in values.items() if k in _CORRELATION_FIELDS}
        extra = {k: v for k, v in values.items() if k not in _CORRELATION_FIELDS}
        return cls(**known, extra=extra)

    def merge(self, other: "LogContext | Mapping[str, Any] | None") -> "LogContext":
        """
        Return a new context where fields set on `other` win over this one.
        """
        if other is None:
            return self
        if not isinstance(other, LogContext):
            other = LogContext.from_mapping(other)
        changes = {
            f.name: getattr(other, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(other, f.name) is not None
        }
        return replace(self, **changes, extra={**self.extra, **other.extra})

    def to_dict(self) -> dict[str, Any]:
        """Flat dict of the set fields plus extras."""
        data = {name: getattr(self, name) for name in _CORRELATION_FIELDS if getattr(self, name) is not None}
        data.update(self.extra)
        return data


_log_context_var: contextvars.ContextVar[LogContext] = contextvars.ContextVar(
    "log_context", default=LogContext()
)


def get_log_context() -> LogContext:
    """Return the LogContext bound to the current execution context."""
    return _log_context_var.get()


def set_log_context(context: LogContext) -> contextvars.Token:
    """Bind `context` and return the token for reset_log_context()."""
    return _log_context_var.set(context)


def reset_log_context(token: contextvars.Token) -> None:
    _log_context_var.reset(token)


@contextmanager
def bind_log_context(**values: Any) -> Iterator[LogContext]:
    """
    Merge `values` into the current LogContext for the duration of the block.

    Unknown keys go to `LogContext.extra`. The previous context is restored on exit,
    even when the block raises.
    """
    merged = get_log_context().merge(LogContext.from_mapping(values))
    token = _log_context_var.set(merged)
    try:
        yield merged
    finally:
        _log_context_var.reset(token)


def set_request_id(request_id: str | None) -> contextvars.Token:
    """
    Shortcut used by the HTTP middleware: bind a context whose trace_id is `request_id`.
    """
    return _log_context_var.set(replace(get_log_context(), trace_id=request_id))


def get_request_id() -> str | None:
    return get_log_context().trace_id


class LogContextFilter(logging.Filter):
    """
    Guarantee that every LogRecord carries `request_id`, `user_id` and `session_id`.

    Values passed explicitly via `extra={...}` win over the bound context. Missing
    request ids become the sentinel "-". Always returns True (annotates, never drops).
    """

    def filter(self, record: LogRecord) -> bool:
        context = get_log_context()
        record.request_id = getattr(record, "request_id", None) or context.trace_id or "-"
        if getattr(record, "user_id", None) is None:
            record.user_id = context.user_id
        if getattr(record, "session_id", None) is None:
            record.session_id = context.session_id
        return True


class RedactFilter(logging.Filter):
    """Mask record attributes whose name is a known secret (password, token, ...)."""

    SENSITIVE = {"password", "secret", "token", "access_token", "refresh_token", "ssn", "authorization", "api_key"}

    def filter(self, record: LogRecord) -> bool:
        for key in list(record.__dict__.keys()):
            if key.lower() in self.SENSITIVE:
                record.__dict__[key] = "***REDACTED***"
        return True
