"""
Cacao Backend — Services Layer
================================

Service Inventory:
    - GeoCache:     TTL cache of geocoding responses behind a reader/writer lock
    - GeoService:   Cached proxy to Nominatim search / reverse
    - PhotoService: Decode, downscale, JPEG re-encode and upload of tasting photos

Services take their configuration and HTTP client in the constructor and
never read the process environment.
"""
