"""
Cacao Backend — Health Check Route
====================================

What:  GET /health for Docker health checks and uptime probes.
How:   Reports cache size and whether photo storage is configured. It makes
       no outbound call: Nominatim's usage policy discourages synthetic
       traffic, and a storage probe would need a write.

Status levels:
    ok:        geo proxy and photo uploads available
    degraded:  geo proxy available, photo storage credentials missing
"""

import time

from fastapi import APIRouter, Depends

from cacao import __version__
from cacao.dependencies import get_geo_service, get_photo_service
from cacao.schemas.common import HealthResponse
from cacao.services.geo_service import GeoService
from cacao.services.photo_service import PhotoService

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(
    geo: GeoService = Depends(get_geo_service),
    photos: PhotoService = Depends(get_photo_service),
) -> HealthResponse:
    storage_ok = photos.is_configured
    return HealthResponse(
        status="ok" if storage_ok else "degraded",
        version=__version__,
        geo_cache_entries=len(geo.cache),
        photo_storage="configured" if storage_ok else "missing",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
