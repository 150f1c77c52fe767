"""
Cacao Backend — HTTP Route Tests
==================================

What:  End-to-end tests of the FastAPI surface.
How:   HTTPX AsyncClient over ASGITransport; the services on app.state talk
       to recording MockTransport upstreams (see conftest.py).

What we test:
    ✅ Geo search/reverse validation and pass-through of upstream status
    ✅ Error responses from the global exception handlers
    ✅ Photo upload success and each failure status
    ✅ Health, request IDs and the geo rate limit
    ✅ Error bodies carry the request ID, including 429 and unexpected 500s
"""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from cacao.config import Settings
from cacao.main import create_app


class TestGeoSearchRoute:
    """Tests for GET /api/geo/search."""

    @pytest.mark.asyncio
    async def test_short_query_returns_empty_list(self, test_client, geo_upstream):
        response = await test_client.get("/api/geo/search", params={"q": " a "})

        assert response.status_code == 200
        assert response.json() == []
        assert geo_upstream.calls == 0

    @pytest.mark.asyncio
    async def test_missing_query_returns_empty_list(self, test_client):
        response = await test_client.get("/api/geo/search")
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_proxies_and_caches(self, test_client, geo_upstream):
        first = await test_client.get("/api/geo/search", params={"q": "Paris"})
        second = await test_client.get("/api/geo/search", params={"q": "Paris"})

        assert first.status_code == 200
        assert first.headers["content-type"] == "application/json; charset=utf-8"
        assert first.json() == [{"display_name": "Paris"}]
        assert second.content == first.content
        assert geo_upstream.calls == 1
        assert geo_upstream.requests[0].url.params["q"] == "Paris"

    @pytest.mark.asyncio
    async def test_upstream_error_status_passed_through(self, test_client, geo_upstream):
        geo_upstream.status_code = 503
        geo_upstream.body = b'{"error": "maintenance"}'

        response = await test_client.get("/api/geo/search", params={"q": "Paris"})

        assert response.status_code == 503
        assert response.json() == {"error": "maintenance"}

    @pytest.mark.asyncio
    async def test_transport_failure_is_502(self, test_client, geo_upstream):
        geo_upstream.error = httpx.ConnectError("connection refused")

        response = await test_client.get("/api/geo/search", params={"q": "Paris"})

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "upstream_unavailable"
        assert data["details"]["service"] == "geocoding"

    @pytest.mark.asyncio
    async def test_timeout_is_502(self, test_client, geo_upstream):
        geo_upstream.error = httpx.ReadTimeout("timed out")

        response = await test_client.get("/api/geo/search", params={"q": "Paris"})

        assert response.status_code == 502
        assert response.json()["details"]["timed_out"] is True


class TestGeoReverseRoute:
    """Tests for GET /api/geo/reverse."""

    @pytest.mark.asyncio
    async def test_reverse(self, test_client, geo_upstream):
        geo_upstream.body = b'{"display_name": "Paris"}'

        response = await test_client.get("/api/geo/reverse", params={"lat": "48.85", "lon": "2.35"})

        assert response.status_code == 200
        assert response.json() == {"display_name": "Paris"}
        params = geo_upstream.requests[0].url.params
        assert params["lat"] == "48.85"
        assert params["lon"] == "2.35"

    @pytest.mark.asyncio
    async def test_missing_coordinates(self, test_client, geo_upstream):
        response = await test_client.get("/api/geo/reverse", params={"lat": "48.85"})

        assert response.status_code == 400
        assert response.json()["message"] == "lat et lon requis"
        assert geo_upstream.calls == 0

    @pytest.mark.asyncio
    async def test_overlong_coordinates(self, test_client, geo_upstream):
        response = await test_client.get(
            "/api/geo/reverse", params={"lat": "4" * 21, "lon": "2.35"}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "lat/lon invalides"
        assert geo_upstream.calls == 0


class TestPhotoRoute:
    """Tests for POST /api/tastings/{tasting_id}/photo."""

    @pytest.mark.asyncio
    async def test_upload_success(self, test_client, storage_upstream, make_image):
        files = {"photo": ("tasting.png", make_image(1600, 900, fmt="PNG"), "image/png")}

        response = await test_client.post("/api/tastings/42/photo", files=files)

        assert response.status_code == 201
        data = response.json()
        assert data["tasting_id"] == "42"
        assert data["photo_url"] == (
            "https://project.supabase.co/storage/v1/object/public/photos/tasting-42-1700000000.jpg"
        )
        assert storage_upstream.calls == 1

    @pytest.mark.asyncio
    async def test_too_large_is_413(self, test_client, photo_service, storage_upstream):
        photo_service.max_bytes = 1024
        files = {"photo": ("big.jpg", b"\xff" * 2048, "image/jpeg")}

        response = await test_client.post("/api/tastings/42/photo", files=files)

        assert response.status_code == 413
        assert response.json()["error"] == "payload_too_large"
        assert storage_upstream.calls == 0

    @pytest.mark.asyncio
    async def test_not_an_image_is_400(self, test_client, storage_upstream):
        files = {"photo": ("notes.txt", b"just some text", "text/plain")}

        response = await test_client.post("/api/tastings/42/photo", files=files)

        assert response.status_code == 400
        assert response.json()["error"] == "decode_error"
        assert storage_upstream.calls == 0

    @pytest.mark.asyncio
    async def test_empty_upload_is_400(self, test_client):
        files = {"photo": ("empty.jpg", b"", "image/jpeg")}

        response = await test_client.post("/api/tastings/42/photo", files=files)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_storage_rejection_is_502(self, test_client, storage_upstream, make_image):
        storage_upstream.status_code = 400
        storage_upstream.body = b'{"message": "Bucket not found"}'
        files = {"photo": ("t.jpg", make_image(100, 100), "image/jpeg")}

        response = await test_client.post("/api/tastings/42/photo", files=files)

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "upstream_rejected"
        assert data["details"]["upstream_status"] == 400
        assert "Bucket not found" not in response.text

    @pytest.mark.asyncio
    async def test_unconfigured_storage_is_503(self, test_client, photo_service, make_image):
        photo_service.storage = None
        files = {"photo": ("t.jpg", make_image(100, 100), "image/jpeg")}

        response = await test_client.post("/api/tastings/42/photo", files=files)

        assert response.status_code == 503
        assert response.json()["error"] == "config_missing"


class TestHealthAndMiddleware:
    """Tests for /health, request IDs and the rate limiter."""

    @pytest.mark.asyncio
    async def test_health_ok(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["photo_storage"] == "configured"
        assert data["geo_cache_entries"] == 0

    @pytest.mark.asyncio
    async def test_health_degraded_without_storage(self, test_client, photo_service):
        photo_service.storage = None

        data = (await test_client.get("/health")).json()

        assert data["status"] == "degraded"
        assert data["photo_storage"] == "missing"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, test_client):
        response = await test_client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_geo_rate_limit(self, test_client):
        for _ in range(10):
            ok = await test_client.get("/api/geo/search", params={"q": "a"})
            assert ok.status_code == 200

        response = await test_client.get("/api/geo/search", params={"q": "a"})

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit_exceeded"
        assert int(response.headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    async def test_rate_limit_ignores_other_paths(self, test_client):
        for _ in range(15):
            response = await test_client.get("/health")
            assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_rate_limit_body_carries_request_id(self, test_client):
        for _ in range(10):
            await test_client.get("/api/geo/search", params={"q": "a"})

        response = await test_client.get(
            "/api/geo/search", params={"q": "a"}, headers={"X-Request-ID": "rl-0042"}
        )

        assert response.status_code == 429
        assert response.json()["request_id"] == "rl-0042"
        assert response.headers["X-Request-ID"] == "rl-0042"

    @pytest.mark.asyncio
    async def test_unexpected_error_keeps_request_id(self, geo_service, photo_service):
        """The catch-all 500 still reports the ID of the failing request."""
        app = create_app(Settings(rate_limit_requests=10, rate_limit_window=60))
        app.state.geo_service = geo_service
        app.state.photo_service = photo_service

        @app.get("/api/broken")
        async def broken():
            raise RuntimeError("boom")

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/broken", headers={"X-Request-ID": "err-0500"})

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "internal_server_error"
        assert data["request_id"] == "err-0500"
