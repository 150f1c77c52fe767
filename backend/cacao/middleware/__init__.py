"""
Cacao Backend — Middleware Package
====================================

Middleware Chain (first to run listed first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    Rate limiting only applies to /api/geo/ paths.
    Request ID is set before logging so every access line carries it.
"""
