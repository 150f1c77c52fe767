"""
Cacao Backend — API Routes Package
====================================

Route Inventory:
    - geo.py:     GET  /api/geo/search              (cached Nominatim search)
                  GET  /api/geo/reverse             (cached Nominatim reverse)
    - photos.py:  POST /api/tastings/{id}/photo     (image ingest pipeline)
    - health.py:  GET  /health                      (service health check)

Routes stay thin: read the request, call a service, shape the response.
"""
