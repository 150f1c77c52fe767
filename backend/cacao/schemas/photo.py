"""
Cacao Backend — Photo Upload Schemas
======================================
"""

from pydantic import BaseModel, Field


class PhotoUploadResponse(BaseModel):
    """
    Returned by POST /api/tastings/{tasting_id}/photo with HTTP 201.

    photo_url is what the tasting record stores in its photo column; it is
    built from the storage base URL and never re-fetched to verify.
    """
    tasting_id: str = Field(description="Tasting the photo belongs to")
    photo_url: str = Field(description="Public URL of the normalized JPEG")
