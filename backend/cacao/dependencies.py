"""
Cacao Backend — Route Dependencies
====================================

What:  FastAPI dependency callables that hand routes the shared services.
How:   The lifespan (or a test fixture) puts one GeoService and one
       PhotoService on app.state; these functions read them back per request.
"""

from fastapi import Request

from cacao.services.geo_service import GeoService
from cacao.services.photo_service import PhotoService


def get_geo_service(request: Request) -> GeoService:
    return request.app.state.geo_service


def get_photo_service(request: Request) -> PhotoService:
    return request.app.state.photo_service
