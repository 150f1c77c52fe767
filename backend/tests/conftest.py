"""
Cacao Backend — Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Upstream services (Nominatim, Supabase Storage) are replaced by
       httpx.MockTransport handlers that record every request; time is a
       FakeClock the tests advance by hand; images are generated with Pillow.

Fixture Hierarchy:
    fake_clock          Manually advanced clock for cache expiry
    geo_upstream        Recording Nominatim stand-in
    storage_upstream    Recording Supabase Storage stand-in
    geo_service         GeoService wired to geo_upstream and fake_clock
    photo_service       PhotoService wired to storage_upstream
    make_image          Factory for JPEG/PNG bytes of a given size
    test_client         HTTPX AsyncClient talking to the FastAPI app
"""

import io
import os
from typing import Callable, List, Optional

# Override settings for testing BEFORE any cacao imports.
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""
os.environ["NOMINATIM_EMAIL"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

from cacao.config import GeoProxyConfig, Settings, StorageConfig
from cacao.services.geo_cache import GeoCache
from cacao.services.geo_service import GeoService
from cacao.services.photo_service import PhotoService

STORAGE_BASE_URL = "https://project.supabase.co"
STORAGE_KEY = "service-role-test-key"


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingUpstream:
    """
    httpx.MockTransport handler that records requests and answers with a
    configurable response (or raises a configurable exception).
    """

    def __init__(self, status_code: int = 200, body: bytes = b"[]"):
        self.status_code = status_code
        self.body = body
        self.error: Optional[Exception] = None
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, content=self.body)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def geo_config() -> GeoProxyConfig:
    return GeoProxyConfig(
        search_url="https://nominatim.test/search",
        reverse_url="https://nominatim.test/reverse",
        user_agent="Cacao-Test/1.0 (tests@example.com)",
    )


@pytest.fixture
def storage_config() -> StorageConfig:
    return StorageConfig(base_url=STORAGE_BASE_URL + "/", service_key=STORAGE_KEY)


@pytest.fixture
def geo_upstream() -> RecordingUpstream:
    return RecordingUpstream(status_code=200, body=b'[{"display_name": "Paris"}]')


@pytest.fixture
def storage_upstream() -> RecordingUpstream:
    return RecordingUpstream(status_code=200, body=b'{"Key": "photos/x.jpg"}')


@pytest_asyncio.fixture
async def geo_service(geo_config, geo_upstream, fake_clock):
    client = geo_upstream.client()
    service = GeoService(geo_config, GeoCache(clock=fake_clock), client=client)
    yield service
    await client.aclose()


@pytest_asyncio.fixture
async def photo_service(storage_config, storage_upstream, fake_clock):
    client = storage_upstream.client()
    service = PhotoService(storage_config, client=client, clock=fake_clock)
    yield service
    await client.aclose()


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """
    Returns a factory producing encoded image bytes.

    Usage:
        png = make_image(1600, 900, "PNG")
    """

    def _make(width: int, height: int, fmt: str = "JPEG", mode: str = "RGB") -> bytes:
        color = (120, 72, 40, 255) if mode == "RGBA" else (120, 72, 40)
        img = Image.new(mode, (width, height), color)
        buf = io.BytesIO()
        img.save(buf, format=fmt)
        return buf.getvalue()

    return _make


@pytest_asyncio.fixture
async def test_client(geo_service, photo_service):
    """
    HTTPX AsyncClient configured to talk to the FastAPI app.

    ASGITransport does not run the lifespan, so the services are placed on
    app.state here, already wired to the recording upstreams.
    """
    from cacao.main import create_app

    app = create_app(Settings(rate_limit_requests=10, rate_limit_window=60))
    app.state.geo_service = geo_service
    app.state.photo_service = photo_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
