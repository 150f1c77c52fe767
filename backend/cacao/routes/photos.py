"""
Cacao Backend — Tasting Photo Route
=====================================

What:  POST /api/tastings/{tasting_id}/photo
How:   Reads the multipart `photo` part, hands it to PhotoService.ingest and
       returns the public URL to store on the tasting.
Who:   Called by the tasting create/edit forms after the tasting row exists.

The tasting itself is saved before this call, so any failure here leaves
the tasting without a photo rather than losing it. Failures come back as
structured errors through the global handlers:
    413 PayloadTooLargeError   400 ImageDecodeError / ValidationError
    502 Upstream*Error         503 ConfigMissingError
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile

from cacao.dependencies import get_photo_service
from cacao.exceptions import ValidationError
from cacao.schemas.common import ErrorResponse
from cacao.schemas.photo import PhotoUploadResponse
from cacao.services.photo_service import PhotoService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Photos"])


@router.post(
    "/tastings/{tasting_id}/photo",
    status_code=201,
    response_model=PhotoUploadResponse,
    responses={
        400: {"description": "Not an image", "model": ErrorResponse},
        413: {"description": "Image larger than the upload limit", "model": ErrorResponse},
        502: {"description": "Object storage failed", "model": ErrorResponse},
        503: {"description": "Object storage not configured", "model": ErrorResponse},
    },
    summary="Attach a photo to a tasting",
)
async def upload_tasting_photo(
    tasting_id: str,
    photo: UploadFile = File(..., description="JPEG or PNG image, max 10MB"),
    photos: PhotoService = Depends(get_photo_service),
) -> PhotoUploadResponse:
    try:
        # Declared size first: refuse before reading the whole part.
        photos.validate_size(0, declared_size=photo.size)

        content = await photo.read()
        if not content:
            raise ValidationError(message="No photo uploaded", field="photo")

        logger.info(
            "Received photo for tasting %s: filename=%s, size=%d bytes",
            tasting_id,
            photo.filename or "unknown",
            len(content),
        )
        photo_url = await photos.ingest(content, tasting_id, declared_size=photo.size)
    finally:
        await photo.close()

    return PhotoUploadResponse(tasting_id=tasting_id, photo_url=photo_url)
