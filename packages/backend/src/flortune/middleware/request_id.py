"""Request ID middleware — correlates every auth log line with one request.

Learn: Each request gets an ID, taken from an incoming X-Request-ID
header when it looks sane (short, printable) and generated otherwise.
The ID, method and path are bound to structlog's contextvars, so
"auth.login_failed" or "session.downstream_mint_failed" can be traced
back to the request that caused it. A single "http.request" line is
logged per request with the status and duration; headers, bodies and
tokens are never logged.
"""

import time
import uuid
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

MAX_REQUEST_ID_LENGTH = 128


def _incoming_request_id(value: Optional[str]) -> str:
    if value and len(value) <= MAX_REQUEST_ID_LENGTH and value.isprintable():
        return value
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request ID for logging and echo it back in the response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _incoming_request_id(request.headers.get("X-Request-ID"))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        response: Response = await call_next(request)
        logger.info(
            "http.request",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        response.headers["X-Request-ID"] = request_id
        return response
