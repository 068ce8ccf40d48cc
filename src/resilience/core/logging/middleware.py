"""
Request ID middleware for FastAPI / Starlette.

For each request:
  1. Use the incoming `X-Request-ID` header when it looks sane, else a new UUID4.
  2. Bind a LogContext (trace_id, path, user agent, client ip) for the duration of the
     request so every log line and every failure record carries it.
  3. Echo the id back in the `X-Request-ID` response header.

Register early (before routers that may emit logs):

    app.add_middleware(RequestIDMiddleware)
"""

import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .filters import bind_log_context

REQUEST_ID_HEADER = "X-Request-ID"

# Opaque ids only: no whitespace/newlines (log injection), bounded length.
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def _resolve_request_id(raw: str | None) -> str:
    if raw and _VALID_REQUEST_ID.match(raw):
        return raw
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = _resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        # exception handlers for unhandled errors run outside this context
        request.state.request_id = rid

        with bind_log_context(
            trace_id=rid,
            path=request.url.path,
            user_agent=request.headers.get("user-agent"),
            ip=request.client.host if request.client else None,
        ):
            response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
