"""
Cacao Backend — Geocoding Proxy Routes
========================================

What:  GET /api/geo/search and GET /api/geo/reverse.
How:   Validate the query, let GeoService build the Nominatim URL and proxy it,
       then forward the upstream status and JSON body unchanged.
Who:   Called by the location picker on the tasting form and by the map page.

Upstream errors are passed through as-is (a Nominatim 429 reaches the browser
as a 429) so the client decides whether to retry. Transport failures become
502 through the global UpstreamUnavailableError handler.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from cacao.dependencies import get_geo_service
from cacao.exceptions import ValidationError
from cacao.schemas.common import ErrorResponse
from cacao.services.geo_service import GeoService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/geo", tags=["Geo"])

JSON_MEDIA_TYPE = "application/json; charset=utf-8"

# Anything longer is not a coordinate.
MAX_COORDINATE_LENGTH = 20


def _json(body: bytes, status_code: int = 200) -> Response:
    return Response(content=body, status_code=status_code, media_type=JSON_MEDIA_TYPE)


@router.get(
    "/search",
    responses={
        200: {"description": "Nominatim search results (JSON array)"},
        502: {"description": "Geocoding service unreachable", "model": ErrorResponse},
    },
    summary="Search places by free text",
)
async def geo_search(
    q: str = Query(default="", description="Free-text place query (2 characters minimum)"),
    geo: GeoService = Depends(get_geo_service),
) -> Response:
    query = q.strip()
    if len(query) < 2:
        return _json(b"[]")

    status_code, body = await geo.search(query)
    return _json(body, status_code)


@router.get(
    "/reverse",
    responses={
        200: {"description": "Nominatim reverse geocoding result (JSON object)"},
        400: {"description": "Missing or malformed coordinates", "model": ErrorResponse},
        502: {"description": "Geocoding service unreachable", "model": ErrorResponse},
    },
    summary="Reverse geocode a latitude/longitude pair",
)
async def geo_reverse(
    lat: Optional[str] = Query(default=None, description="Latitude, e.g. 48.85"),
    lon: Optional[str] = Query(default=None, description="Longitude, e.g. 2.35"),
    geo: GeoService = Depends(get_geo_service),
) -> Response:
    lat = (lat or "").strip()
    lon = (lon or "").strip()
    if not lat or not lon:
        raise ValidationError(message="lat et lon requis", field="lat")
    if len(lat) > MAX_COORDINATE_LENGTH or len(lon) > MAX_COORDINATE_LENGTH:
        raise ValidationError(
            message="lat/lon invalides",
            field="lat",
            context={"max_length": MAX_COORDINATE_LENGTH},
        )

    status_code, body = await geo.reverse(lat, lon)
    return _json(body, status_code)
