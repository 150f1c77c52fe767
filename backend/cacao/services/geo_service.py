"""
Cacao Backend — Geocoding Proxy Service
=========================================

What:  Forwards geocoding queries to Nominatim through the response cache.
How:   proxy() checks GeoCache, otherwise issues a bounded GET with httpx,
       caches 200 responses with a non-empty body, and hands the upstream
       status and body back verbatim.
Who:   Built once in the lifespan; used by the /api/geo routes.

Failure mapping:
    httpx.InvalidURL / UnsupportedProtocol  → GeoRequestError (500)
    httpx.TimeoutException                  → UpstreamUnavailableError(timed_out=True) (502)
    any other httpx.TransportError          → UpstreamUnavailableError (502)
    upstream 4xx/5xx                        → returned as-is, never cached
    task cancellation                       → asyncio.CancelledError, cache untouched

No retries happen here. A client that wants one simply asks again.
"""

import logging
import time
from typing import Optional, Tuple
from urllib.parse import urlencode

import httpx

from cacao.config import GeoProxyConfig
from cacao.exceptions import GeoRequestError, UpstreamUnavailableError
from cacao.services.geo_cache import GeoCache

logger = logging.getLogger(__name__)


class GeoService:
    """
    Cached proxy in front of the Nominatim search and reverse endpoints.

    Args:
        config: Endpoints, identification headers, timeout and cache TTL.
        cache: Shared response cache.
        client: Optional pre-built httpx client (tests inject one backed by
                httpx.MockTransport). When omitted the service owns its client
                and closes it in aclose().
    """

    def __init__(
        self,
        config: GeoProxyConfig,
        cache: GeoCache,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.cache = cache
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        logger.info(
            "GeoService initialized (timeout=%.1fs, ttl=%ds)",
            config.timeout_seconds,
            config.cache_ttl_seconds,
        )

    def _headers(self) -> dict:
        return {
            "User-Agent": self.config.user_agent,
            "Accept": "application/json",
            "Accept-Language": self.config.accept_language,
        }

    async def proxy(self, upstream_url: str) -> Tuple[int, bytes]:
        """
        Fetch `upstream_url`, serving from cache when possible.

        Returns:
            (status_code, body) exactly as the upstream sent them, or
            (200, cached_body) on a cache hit.

        Raises:
            GeoRequestError: the request could not be constructed.
            UpstreamUnavailableError: transport failure or timeout.
        """
        body, found = self.cache.lookup(upstream_url)
        if found:
            logger.debug("Geo cache hit: %s", upstream_url)
            return 200, body

        try:
            request = self._client.build_request(
                "GET",
                upstream_url,
                headers=self._headers(),
                timeout=self.config.timeout_seconds,
            )
        except (httpx.InvalidURL, ValueError) as e:
            logger.error("Cannot build geocoding request for %s: %s", upstream_url, e)
            raise GeoRequestError(context={"url": upstream_url, "error": str(e)}) from e

        start_time = time.perf_counter()
        try:
            response = await self._client.send(request)
        except httpx.UnsupportedProtocol as e:
            logger.error("Unsupported geocoding URL %s: %s", upstream_url, e)
            raise GeoRequestError(context={"url": upstream_url, "error": str(e)}) from e
        except httpx.TimeoutException as e:
            logger.warning(
                "Geocoding request timed out after %.1fs: %s",
                self.config.timeout_seconds,
                upstream_url,
            )
            raise UpstreamUnavailableError(
                service="geocoding",
                message="Le service de géolocalisation ne répond pas.",
                timed_out=True,
            ) from e
        except httpx.TransportError as e:
            logger.warning("Geocoding transport failure for %s: %s", upstream_url, e)
            raise UpstreamUnavailableError(
                service="geocoding",
                message="Service géolocalisation indisponible",
                context={"error": type(e).__name__},
            ) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        body = response.content

        if response.status_code == 200 and body:
            self.cache.store(upstream_url, body, self.config.cache_ttl_seconds)
        else:
            logger.warning(
                "Geocoding upstream answered %d (%d bytes), not cached",
                response.status_code,
                len(body),
            )

        logger.debug(
            "Geo cache miss: %s → %d in %.0fms",
            upstream_url,
            response.status_code,
            duration_ms,
        )
        return response.status_code, body

    # ── URL builders ──────────────────────────────────────────────────────

    def _with_email(self, params: dict) -> dict:
        if self.config.email:
            params["email"] = self.config.email
        return params

    def search_url(self, query: str) -> str:
        params = self._with_email({
            "format": "json",
            "q": query,
            "limit": str(self.config.search_limit),
            "addressdetails": "1",
            "accept-language": self.config.accept_language,
        })
        return f"{self.config.search_url}?{urlencode(params)}"

    def reverse_url(self, lat: str, lon: str) -> str:
        params = self._with_email({
            "format": "json",
            "lat": lat,
            "lon": lon,
            "addressdetails": "1",
            "accept-language": self.config.accept_language,
        })
        return f"{self.config.reverse_url}?{urlencode(params)}"

    async def search(self, query: str) -> Tuple[int, bytes]:
        """Free-text place search."""
        return await self.proxy(self.search_url(query))

    async def reverse(self, lat: str, lon: str) -> Tuple[int, bytes]:
        """Reverse geocoding of a lat/lon pair (passed through as given)."""
        return await self.proxy(self.reverse_url(lat, lon))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
