"""
Cacao Backend — Access Logging Middleware
===========================================

What:  One log line per HTTP request: method, path, status, duration, client.
How:   Measures wall time around call_next and logs on the "cacao.access"
       logger with a level chosen from the status class. /health is skipped.

Typical durations:
    GET /api/geo/search (cache hit):   ~1ms
    GET /api/geo/search (cache miss):  200-1500ms (Nominatim round trip)
    POST /api/tastings/{id}/photo:     300-3000ms (decode + encode + upload)
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from cacao.middleware.request_id import request_id_var

logger = logging.getLogger("cacao.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its status and duration, correlated by request ID."""

    SKIP_PATHS = {"/health"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            request.url.path + (f"?{request.url.query}" if request.url.query else ""),
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
