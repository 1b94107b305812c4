"""Request middleware.

Assigns a request ID to every request and emits one canonical log line
per request.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from devspaces.app.logging import clear_request_id, set_request_id
from devspaces.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

# Header name for request ID (standard convention)
REQUEST_ID_HEADER = "X-Request-ID"

_SKIP_LOG_PATHS = frozenset({"/health", "/api/auth/verify"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware that assigns a unique ID to each request.

    - Uses existing X-Request-ID header if present (for distributed tracing)
    - Generates new UUID if not present
    - Sets request_id in context for logging
    - Returns request_id in response header
    - Logs a request_complete line (request_failed on unhandled errors)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "Request failed",
                extra={
                    "event": LogEvent.REQUEST_FAILED,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": (time.monotonic() - start) * 1000,
                },
            )
            clear_request_id()
            raise

        if request.url.path not in _SKIP_LOG_PATHS:
            logger.info(
                "Request completed",
                extra={
                    "event": LogEvent.REQUEST_COMPLETE,
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": (time.monotonic() - start) * 1000,
                },
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        clear_request_id()
        return response
