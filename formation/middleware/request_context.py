"""Request context middleware: request id, caller id and timing.

Concurrent requests share one thread under asyncio, so per-request
state lives in ContextVars rather than thread-locals. A filter on the
root logger copies both ids onto every LogRecord; the JSON formatter
lifts them to top-level keys.

Note: the middleware's own summary line runs outside the route's
context, so it reads the caller id from the header rather than the var.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-user-id"

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
user_id_var: ContextVar[str] = ContextVar("user_id", default="-")


class _RequestContextFilter(logging.Filter):
    """Attach request_id and user_id to every record.

    A filter, not a formatter: formatters only read fields, filters can
    add them before formatting.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        if not hasattr(record, "user_id"):
            record.user_id = user_id_var.get("-")  # type: ignore[attr-defined]
        return True


# Guard against duplicate installation across module reloads.
root_logger = logging.getLogger()
if not any(isinstance(f, _RequestContextFilter) for f in root_logger.filters):
    root_logger.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, log one summary line.

    Honours an incoming X-Request-ID and echoes the id on the response.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "user_id": request.headers.get(USER_ID_HEADER, "-").strip() or "-",
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
