# resilience/api/error_handlers.py
"""
FastAPI exception handlers that turn failures into the standard error envelope.

How to use:
    - Register the handlers in your app factory with `register_exception_handlers(app)`.
    - Raise `StructuredError.of(ErrorCode.NOT_FOUND, "User not found")` (or let
      `storage_error_boundary` raise one) from routes and services.
    - Each handler logs the failure once through the failure logger, so the record
      carries its classification and the request's trace id. Failures already reported
      by `with_retry` (see `was_logged`) are rendered without a second record.

| Exception              | Status                     | Code              |
| ---------------------- | -------------------------- | ----------------- |
| StructuredError        | get_status_code(code)      | the error's code  |
| RequestValidationError | 400                        | VALIDATION_ERROR  |
| any other Exception    | 500                        | INTERNAL_ERROR    |
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from resilience.config import get_settings
from resilience.core.failure_logger import log_failure, was_logged
from resilience.core.logging.filters import get_request_id
from resilience.exceptions.base import StructuredError, create_error_response
from resilience.exceptions.codes import ErrorCode, get_status_code

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


def _trace_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or get_request_id()


def _request_context(request: Request) -> dict:
    return {
        "trace_id": _trace_id(request),
        "path": request.url.path,
        "method": request.method,
    }


async def structured_error_handler(request: Request, exc: StructuredError) -> JSONResponse:
    """
    Envelope for a StructuredError, with the HTTP status taken from its code.
    """
    if not was_logged(exc):
        log_failure(exc, context=_request_context(request))
    payload = exc.payload
    response = create_error_response(
        payload.code,
        payload.message,
        details=payload.details,
        trace_id=payload.trace_id or _trace_id(request),
        path=payload.path or request.url.path,
        timestamp=payload.timestamp,
    )
    return JSONResponse(status_code=get_status_code(payload.code), content=response.to_response())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    400 with one detail entry per invalid field.
    """
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    payload = create_error_response(
        ErrorCode.VALIDATION_ERROR,
        "Request validation failed",
        details=details,
        trace_id=_trace_id(request),
        path=request.url.path,
    )
    log_failure(payload, context=_request_context(request))
    return JSONResponse(status_code=400, content=payload.to_response())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Fallback for everything else -> 500. The exception text is only exposed outside
    production; the full failure (with stack) always goes to the logs.
    """
    if not was_logged(exc):
        log_failure(exc, context=_request_context(request))
    message = GENERIC_ERROR_MESSAGE if get_settings().is_production else str(exc) or GENERIC_ERROR_MESSAGE
    payload = create_error_response(
        ErrorCode.INTERNAL_ERROR,
        message,
        trace_id=_trace_id(request),
        path=request.url.path,
    )
    return JSONResponse(status_code=500, content=payload.to_response())


# Helper to register all handlers on an app (call this from your app factory)
def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StructuredError, structured_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
