"""
Cacao Backend
=============

Geocoding proxy cache and tasting photo pipeline for the Cacao tasting
journal, served by FastAPI.

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (GeoService, PhotoSvc)   │  ← proxy + cache, image pipeline
    ├─────────────────────────────────────┤
    │       Schemas & Configuration       │  ← Pydantic models, settings
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
