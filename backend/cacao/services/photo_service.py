"""
Cacao Backend — Tasting Photo Pipeline
========================================

What:  Turns an uploaded image into a bounded JPEG in object storage.
How:   size check → decode (Pillow) → downscale to max width → JPEG re-encode
       → authenticated upsert POST to Supabase Storage → public URL.
Who:   Built once in the lifespan; called by the tasting photo route.

Pipeline guarantees:
    1. Oversized input is rejected before a single byte is decoded.
    2. Output is always JPEG at a fixed quality, whatever the input format.
    3. Images at or under the width limit keep their dimensions.
    4. Nothing is written locally and nothing is kept between calls.
    5. No retries: a failed upload surfaces as an exception to the caller,
       who records the tasting without a photo.

Object naming:
    tasting-<owner_id>-<unix seconds>.jpg
    Re-uploads for the same tasting within the same second overwrite each
    other (x-upsert: true) instead of failing.
"""

import asyncio
import io
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from cacao.config import StorageConfig
from cacao.exceptions import (
    ConfigMissingError,
    ImageDecodeError,
    PayloadTooLargeError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MAX_UPLOAD_SIZE = 10 * 1024 * 1024
MAX_IMAGE_WIDTH = 1200
JPEG_QUALITY = 80

# Owner ids end up in an object path; keep them to URL-safe characters.
_OWNER_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


@dataclass(frozen=True)
class ProcessedImage:
    """Encoded JPEG bytes plus the final dimensions."""

    data: bytes
    width: int
    height: int
    source_format: Optional[str]
    resized: bool


def normalize_image(raw: bytes, max_width: int = MAX_IMAGE_WIDTH, quality: int = JPEG_QUALITY) -> ProcessedImage:
    """
    Decode `raw`, downscale if wider than `max_width`, and encode as JPEG.

    CPU-bound; PhotoService runs it in a worker thread.

    Raises:
        ImageDecodeError if Pillow cannot identify or fully decode the data.
    """
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageDecodeError(context={"error": str(e)}) from e

    source_format = img.format
    width, height = img.size
    resized = False

    if width > max_width:
        new_height = max(1, round(height * max_width / width))
        img = img.resize((max_width, new_height), Image.Resampling.LANCZOS)
        resized = True

    if img.mode != "RGB":
        img = img.convert("RGB")

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)

    return ProcessedImage(
        data=buf.getvalue(),
        width=img.width,
        height=img.height,
        source_format=source_format,
        resized=resized,
    )


class PhotoService:
    """
    Ingest pipeline for tasting photos.

    Args:
        storage: Object storage endpoint and credential. None means uploads
                 are not configured; ingest() then raises ConfigMissingError
                 while the rest of the application keeps working.
        client: Optional pre-built httpx client (tests inject a MockTransport).
        max_bytes: Default upload size limit.
        max_width: Width above which images are downscaled.
        jpeg_quality: Encoder quality for the normalized JPEG.
        clock: Seconds since the epoch, used for object names.
    """

    def __init__(
        self,
        storage: Optional[StorageConfig],
        client: Optional[httpx.AsyncClient] = None,
        max_bytes: int = MAX_UPLOAD_SIZE,
        max_width: int = MAX_IMAGE_WIDTH,
        jpeg_quality: int = JPEG_QUALITY,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.storage = storage
        self.max_bytes = max_bytes
        self.max_width = max_width
        self.jpeg_quality = jpeg_quality
        self._clock = clock or time.time
        self._owns_client = client is None
        timeout = storage.timeout_seconds if storage else 20.0
        self._client = client or httpx.AsyncClient(timeout=timeout)

        if storage is None:
            logger.warning("PhotoService initialized without storage; photo uploads are disabled")
        else:
            logger.info(
                "PhotoService initialized (bucket=%s, max_width=%d, quality=%d)",
                storage.bucket,
                max_width,
                jpeg_quality,
            )

    @property
    def is_configured(self) -> bool:
        return self.storage is not None

    def validate_size(self, actual_size: int, declared_size: Optional[int] = None, max_bytes: Optional[int] = None) -> None:
        """
        Reject uploads above the byte limit.

        The declared size (multipart part size, Content-Length) is checked as
        well as the real byte count since either may be the larger one.
        """
        limit = max_bytes if max_bytes is not None else self.max_bytes
        if declared_size is not None and declared_size > limit:
            raise PayloadTooLargeError(max_bytes=limit, actual_bytes=declared_size, context={"declared": True})
        if actual_size > limit:
            raise PayloadTooLargeError(max_bytes=limit, actual_bytes=actual_size)

    def object_name(self, owner_id: str) -> str:
        return f"tasting-{owner_id}-{int(self._clock())}.jpg"

    @staticmethod
    def upload_url(storage: StorageConfig, name: str) -> str:
        return f"{storage.base_url}/storage/v1/object/{storage.bucket}/{name}"

    @staticmethod
    def public_url(storage: StorageConfig, name: str) -> str:
        return f"{storage.base_url}/storage/v1/object/public/{storage.bucket}/{name}"

    async def ingest(
        self,
        raw: bytes,
        owner_id: str,
        max_bytes: Optional[int] = None,
        declared_size: Optional[int] = None,
    ) -> str:
        """
        Normalize `raw` and publish it for tasting `owner_id`.

        Returns:
            Public URL of the stored JPEG.

        Raises:
            PayloadTooLargeError, ValidationError, ConfigMissingError,
            ImageDecodeError, UpstreamRejectedError, UpstreamUnavailableError.
        """
        self.validate_size(len(raw), declared_size, max_bytes)

        if not _OWNER_ID_RE.match(owner_id or ""):
            raise ValidationError(message="Invalid tasting identifier", field="tasting_id")

        if self.storage is None:
            raise ConfigMissingError(missing=["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"])
        storage = self.storage

        processed = await asyncio.to_thread(normalize_image, raw, self.max_width, self.jpeg_quality)
        logger.debug(
            "Normalized %s image to %dx%d JPEG (%d bytes, resized=%s)",
            processed.source_format,
            processed.width,
            processed.height,
            len(processed.data),
            processed.resized,
        )

        name = self.object_name(owner_id)
        await self._upload(storage, name, processed.data)

        url = self.public_url(storage, name)
        logger.info("Photo stored for tasting %s: %s (%d bytes)", owner_id, name, len(processed.data))
        return url

    async def _upload(self, storage: StorageConfig, name: str, data: bytes) -> None:
        headers = {
            "Authorization": f"Bearer {storage.service_key}",
            "apikey": storage.service_key,
            "Content-Type": "image/jpeg",
            "x-upsert": "true",
        }
        try:
            response = await self._client.post(
                self.upload_url(storage, name),
                content=data,
                headers=headers,
                timeout=storage.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            logger.warning("Storage upload timed out after %.1fs: %s", storage.timeout_seconds, name)
            raise UpstreamUnavailableError(service="storage", timed_out=True) from e
        except httpx.TransportError as e:
            logger.warning("Storage upload transport failure for %s: %s", name, e)
            raise UpstreamUnavailableError(service="storage", context={"error": type(e).__name__}) from e

        if not response.is_success:
            logger.warning("Storage rejected %s: %d %s", name, response.status_code, response.text)
            raise UpstreamRejectedError(
                service="storage",
                status_code=response.status_code,
                body=response.text,
                context={"object": name},
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
