"""
Cacao Backend — Geo Proxy Rate Limiting Middleware
====================================================

What:  Per-IP sliding window limit on the geocoding proxy endpoints.
How:   Keeps a list of request timestamps per client IP; requests under
       `path_prefix` beyond `max_requests` within `window_seconds` get a 429
       with Retry-After. Other paths pass straight through.

Algorithm: Sliding Window Log
    1. Drop the client's timestamps older than now - window
    2. If the remaining count >= limit, reject
    3. Otherwise record now and continue

Nominatim's public instance allows about one request per second per
application; this keeps a single chatty client (an autocomplete box typing
fast) from spending that budget for everyone. Cache hits count too.

In-memory and per-process: with several workers each enforces its own window.
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from cacao.exceptions import RateLimitExceededError
from cacao.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Args:
        max_requests: Requests allowed per client within the window.
        window_seconds: Window length.
        path_prefix: Only paths starting with this prefix are limited.
        clock: Seconds source, injectable for tests.
    """

    CLEANUP_EVERY = 1000

    def __init__(
        self,
        app,
        max_requests: int = 120,
        window_seconds: int = 60,
        path_prefix: str = "/api/geo/",
        clock: Optional[Callable[[], float]] = None,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.path_prefix = path_prefix
        self._clock = clock or time.time
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = self._clock()
        window_start = now - self.window_seconds

        timestamps = [ts for ts in self._requests[client_ip] if ts > window_start]
        self._requests[client_ip] = timestamps

        if len(timestamps) >= self.max_requests:
            retry_after = int(timestamps[0] + self.window_seconds - now) + 1
            exc = RateLimitExceededError(retry_after=retry_after)
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(timestamps),
                self.window_seconds,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)

        self._seen += 1
        if self._seen % self.CLEANUP_EVERY == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        """Forget IPs with no request inside the current window."""
        inactive = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for ip in inactive:
            del self._requests[ip]
        if inactive:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive))
