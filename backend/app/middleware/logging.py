"""
RadCatalog Backend - Request Logging Middleware
=================================================

What:  One access-log line per HTTP request with status and duration.
How:   Measures wall time around the downstream call and logs through the
       `radcatalog.access` logger at a level chosen from the status code.
When:  Runs inside RequestIDMiddleware, so the request ID is already set.

Typical durations:
    - GET /api/templates:           10-100ms (database query)
    - POST /api/sync/all:           seconds (two upstream listings + reconcile)
    - POST /api/sync/template-data: minutes (batched detail lookups with pauses)

Request and response bodies are never logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("radcatalog.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status, duration and client for every non-health request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        # Health probes run every few seconds
        if path == "/health":
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
