"""
Cacao Backend — Shared Response Schemas
=========================================

What:  Error and health payloads shared by every router.
Why:   One error shape for all endpoints, so the frontend parses failures the
       same way whether they come from the geo proxy or the photo pipeline.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error body.

    Example:
        {
            "error": "payload_too_large",
            "message": "File too large (12.3MB, max 10MB).",
            "details": {"max_bytes": 10485760, "actual_bytes": 12897484},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Liveness plus the state of the two components."""
    status: str = Field(description="ok, or degraded when photo storage is not configured")
    version: str = Field(description="Application version")
    geo_cache_entries: int = Field(description="Entries currently held by the geocoding cache")
    photo_storage: str = Field(description="configured or missing")
    uptime_seconds: float = Field(description="Seconds since service started")
