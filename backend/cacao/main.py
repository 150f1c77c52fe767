"""
Cacao Backend — FastAPI Application Factory
=============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers and routers; the
       lifespan builds the shared services once and stores them on app.state.
Who:   uvicorn (uvicorn cacao.main:app) and the test suite.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware: RequestID → Logging → RateLimit        │
    │                                                     │
    │  Routes:                                            │
    │    GET /api/geo/search   GET /api/geo/reverse       │
    │    POST /api/tastings/{id}/photo   GET /health      │
    │                                                     │
    │  app.state:                                         │
    │    geo_service   (GeoService + GeoCache)            │
    │    photo_service (PhotoService)                     │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → GeoCache/GeoService → StorageConfig/PhotoService
    Shutdown: close both services' HTTP clients
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from cacao import __version__
from cacao.config import Settings, settings
from cacao.exceptions import (
    CacaoError,
    ConfigMissingError,
    GeoRequestError,
    ImageDecodeError,
    PayloadTooLargeError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
    ValidationError,
)
from cacao.middleware.logging import RequestLoggingMiddleware
from cacao.middleware.rate_limit import RateLimitMiddleware
from cacao.middleware.request_id import RequestIDMiddleware, request_id_var
from cacao.routes import geo, health, photos
from cacao.services.geo_cache import GeoCache
from cacao.services.geo_service import GeoService
from cacao.services.photo_service import PhotoService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str) -> None:
    """
    Configure the root logger once, at startup.

    Format: 2024-01-15T12:00:00 [INFO] cacao.services.geo_service: message
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Service Construction
# ══════════════════════════════════════════════════════════════════════════

def build_geo_service(app_settings: Settings) -> GeoService:
    cache = GeoCache(sweep_every=app_settings.geo_cache_sweep_every)
    return GeoService(app_settings.geo_proxy_config(), cache)


def build_photo_service(app_settings: Settings) -> PhotoService:
    """
    Build the photo pipeline. Missing storage credentials disable uploads
    only: the service is still created and answers 503 per request.
    """
    try:
        storage = app_settings.storage_config()
    except ConfigMissingError as e:
        logger.warning("Photo uploads disabled: %s", e.message)
        storage = None

    return PhotoService(
        storage,
        max_bytes=app_settings.max_upload_size,
        max_width=app_settings.max_image_width,
        jpeg_quality=app_settings.jpeg_quality,
    )


def make_lifespan(app_settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # ── Startup ───────────────────────────────────────────────────────
        setup_logging(app_settings.log_level)
        logger.info("Cacao backend %s starting up...", __version__)

        app.state.geo_service = build_geo_service(app_settings)
        app.state.photo_service = build_photo_service(app_settings)

        logger.info("Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port)

        yield

        # ── Shutdown ──────────────────────────────────────────────────────
        logger.info("Cacao backend shutting down...")
        await app.state.geo_service.aclose()
        await app.state.photo_service.aclose()
        logger.info("Shutdown complete.")

    return lifespan


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    """
    Current request ID. The catch-all handler runs after RequestIDMiddleware
    has reset the ContextVar, so request.state is the fallback.
    """
    return request_id_var.get("") or getattr(request.state, "request_id", "")


def _error_response(request: Request, status_code: int, error: str, message: str,
                    details: Optional[dict] = None) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": _request_id(request)}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions to HTTP responses.

        ValidationError / ImageDecodeError  → 400
        PayloadTooLargeError                → 413
        RateLimitExceededError              → 429 (sent by RateLimitMiddleware)
        GeoRequestError                     → 500
        UpstreamUnavailableError            → 502
        UpstreamRejectedError               → 502
        ConfigMissingError                  → 503
        CacaoError / Exception              → 500
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.message)
        return _error_response(request, 400, "validation_error", exc.message, exc.context)

    @app.exception_handler(ImageDecodeError)
    async def handle_decode_error(request: Request, exc: ImageDecodeError):
        logger.warning("[%s] Image decode error: %s", _request_id(request), exc.context.get("error"))
        return _error_response(request, 400, "decode_error", exc.message)

    @app.exception_handler(PayloadTooLargeError)
    async def handle_payload_too_large(request: Request, exc: PayloadTooLargeError):
        logger.warning("[%s] Payload too large: %d bytes", _request_id(request), exc.actual_bytes)
        return _error_response(request, 413, "payload_too_large", exc.message, exc.context)

    @app.exception_handler(GeoRequestError)
    async def handle_geo_request_error(request: Request, exc: GeoRequestError):
        logger.error("[%s] Geo request error: %s | Context: %s", _request_id(request), exc.message, exc.context)
        return _error_response(request, 500, "geo_request_error", "Erreur requête geo")

    @app.exception_handler(UpstreamUnavailableError)
    async def handle_upstream_unavailable(request: Request, exc: UpstreamUnavailableError):
        logger.error("[%s] Upstream unavailable: %s | Context: %s", _request_id(request), exc.message, exc.context)
        return _error_response(
            request, 502, "upstream_unavailable", exc.message,
            {"service": exc.service, "timed_out": exc.timed_out},
        )

    @app.exception_handler(UpstreamRejectedError)
    async def handle_upstream_rejected(request: Request, exc: UpstreamRejectedError):
        # Body can carry storage internals: logged, not returned.
        logger.error(
            "[%s] Upstream %s rejected request: %d %s",
            _request_id(request), exc.service, exc.status_code, exc.body,
        )
        return _error_response(
            request, 502, "upstream_rejected", f"The {exc.service} service rejected the request.",
            {"service": exc.service, "upstream_status": exc.status_code},
        )

    @app.exception_handler(ConfigMissingError)
    async def handle_config_missing(request: Request, exc: ConfigMissingError):
        logger.error("[%s] Configuration missing: %s", _request_id(request), exc.missing)
        return _error_response(request, 503, "config_missing", "This feature is not configured on the server.")

    @app.exception_handler(CacaoError)
    async def handle_cacao_error(request: Request, exc: CacaoError):
        logger.error("[%s] Application error: %s | Context: %s", _request_id(request), exc.message, exc.context)
        return _error_response(request, 500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", _request_id(request), str(exc), exc_info=True)
        return _error_response(
            request, 500, "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use instead of the module-level singleton
                      (tests pass their own).
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title="Cacao API",
        description="Geocoding proxy and tasting photo pipeline for the Cacao tasting journal.",
        version=__version__,
        lifespan=make_lifespan(app_settings),
    )

    # Middleware executes in reverse order of addition.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=app_settings.rate_limit_requests,
        window_seconds=app_settings.rate_limit_window,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(geo.router)
    app.include_router(photos.router)
    app.include_router(health.router)

    return app


app = create_app()
