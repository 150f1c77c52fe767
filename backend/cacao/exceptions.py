"""
Cacao Backend — Custom Exception Hierarchy
============================================

What:  Application-specific exceptions for the geo proxy and photo pipeline.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services and routes; caught by global handlers.

Exception Hierarchy:
    CacaoError (base)
    ├── ValidationError            → 400 Bad Request
    ├── ImageDecodeError           → 400 Bad Request
    ├── PayloadTooLargeError       → 413 Payload Too Large
    ├── RateLimitExceededError     → 429 Too Many Requests
    ├── GeoRequestError            → 500 Internal Server Error
    ├── UpstreamUnavailableError   → 502 Bad Gateway (transport failure)
    ├── UpstreamRejectedError      → 502 Bad Gateway (non-2xx from storage)
    └── ConfigMissingError         → 503 Service Unavailable

Caller cancellation is not part of this hierarchy: asyncio.CancelledError is
propagated untouched so it can never be mistaken for an upstream failure.
"""

from typing import Any, Dict, List, Optional


class CacaoError(Exception):
    """
    Base exception for all Cacao application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, selectively returned)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CacaoError):
    """
    Raised when client input fails validation.

    When:    Missing or oversized lat/lon, empty photo upload.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class PayloadTooLargeError(CacaoError):
    """
    Raised when an upload exceeds the configured byte limit.

    Always raised before any decode attempt, from either the declared size
    (multipart part size) or the actual byte count.
    HTTP:    413 Payload Too Large
    """

    def __init__(
        self,
        max_bytes: int,
        actual_bytes: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        max_mb = max_bytes / (1024 * 1024)
        message = f"File too large ({actual_bytes / (1024 * 1024):.1f}MB, max {max_mb:.0f}MB)."
        ctx = context or {}
        ctx.update({"max_bytes": max_bytes, "actual_bytes": actual_bytes})
        super().__init__(message=message, context=ctx)
        self.max_bytes = max_bytes
        self.actual_bytes = actual_bytes


class ImageDecodeError(CacaoError):
    """
    Raised when uploaded bytes are not a decodable image.

    When:    Unknown container format, truncated or corrupt data.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "The uploaded file is not a readable image.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class GeoRequestError(CacaoError):
    """
    Raised when the outbound geocoding request cannot even be built.

    When:    Invalid URL or unsupported scheme in the configured endpoint.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Could not build the geocoding request.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UpstreamUnavailableError(CacaoError):
    """
    Raised on transport-level failure talking to an upstream service.

    When:    Connection refused, DNS failure, read error, timeout.
    HTTP:    502 Bad Gateway

    Attributes:
        service: "geocoding" or "storage"
        timed_out: True when the failure was the request timeout
    """

    def __init__(
        self,
        service: str,
        message: Optional[str] = None,
        timed_out: bool = False,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update({"service": service, "timed_out": timed_out})
        super().__init__(
            message=message or f"The {service} service is unavailable.",
            context=ctx,
        )
        self.service = service
        self.timed_out = timed_out


class UpstreamRejectedError(CacaoError):
    """
    Raised when an upstream service answers with a non-2xx status.

    Carries the upstream status code and response body verbatim so callers
    can log or inspect them.
    HTTP:    502 Bad Gateway
    """

    def __init__(
        self,
        service: str,
        status_code: int,
        body: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update({"service": service, "upstream_status": status_code})
        message = f"The {service} service rejected the request ({status_code})"
        if body:
            message = f"{message}: {body}"
        super().__init__(message=message, context=ctx)
        self.service = service
        self.status_code = status_code
        self.body = body


class ConfigMissingError(CacaoError):
    """
    Raised when a credential or endpoint required by an operation is absent.

    Fatal for the operation that needs it, never for the process.
    HTTP:    503 Service Unavailable
    """

    def __init__(
        self,
        missing: List[str],
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"Missing configuration: {', '.join(missing)}"
        ctx = context or {}
        ctx["missing"] = list(missing)
        super().__init__(message=message, context=ctx)
        self.missing = list(missing)


class RateLimitExceededError(CacaoError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
