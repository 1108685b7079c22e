"""
RadCatalog Backend - Request ID Middleware
============================================

What:  Assigns a correlation ID to every request and echoes it in `X-Request-ID`.
How:   Reuses a client-supplied `X-Request-ID` header or generates a short UUID,
       stores it in a ContextVar (read by the access log and the exception
       handlers) and in `request.state`.

A sync run can take minutes and log hundreds of lines from the reconciler and
refresher; the ID in the error envelope ties a failed run to those lines.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
