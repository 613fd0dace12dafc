from datetime import datetime
from typing import List

from pydantic import Field

from pontocarro.schemas.validation import ApiModel


class ImageOut(ApiModel):
    """Public view of an image; the storage key never leaves the server."""

    id: str
    vehicle_id: str
    image_url: str = Field(..., description="Canonical CDN URL")
    created_at: datetime


class ImageUploadResponse(ApiModel):
    message: str
    images: List[str] = Field(..., description="URLs of the uploaded images")
    image_ids: List[str]
