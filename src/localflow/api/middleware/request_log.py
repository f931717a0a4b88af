"""Request logging middleware — one debug event per request.

Also injects ``X-Request-ID`` so submissions can be correlated with the
server log.
"""

from __future__ import annotations

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from localflow.logging import get_logger

log = get_logger("localflow.api.requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, remote address, status and latency of every request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        start = time.perf_counter()
        response = await call_next(request)
        log.debug(
            "http_request",
            method=request.method,
            path=request.url.path,
            remote=request.client.host if request.client else None,
            status=response.status_code,
            elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
            request_id=request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response
