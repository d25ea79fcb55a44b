from datetime import datetime

from pydantic import BaseModel, Field

from imghost.models.enums import Orientation


class ImagePaths(BaseModel):
    original: str
    # Empty for animated formats, which get no compressed variants
    webp: str = ""
    avif: str = ""


class ImageSizes(BaseModel):
    original: int = Field(..., gt=0)
    webp: int = Field(default=0, ge=0)
    avif: int = Field(default=0, ge=0)


class ImageRecord(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    original_name: str
    upload_time: datetime
    expiry_time: datetime | None = None
    orientation: Orientation
    format: str
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    paths: ImagePaths
    sizes: ImageSizes
    tags: list[str] = Field(default_factory=list)


class ImageUpdate(BaseModel):
    """Partial update. Only fields that were explicitly set are applied;
    ``expiry_time=None`` clears the expiry, ``tags`` replaces the whole set."""
    expiry_time: datetime | None = None
    tags: list[str] | None = None


class ImageFilters(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=12, ge=1)
    tag: str | None = None
    orientation: Orientation | None = None


class RandomFilters(BaseModel):
    tags: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    orientation: Orientation | None = None


class ImagePage(BaseModel):
    images: list[ImageRecord] = Field(default_factory=list)
    total: int = 0


class UploadUrls(BaseModel):
    original: str
    webp: str = ""
    avif: str = ""


class UploadResult(BaseModel):
    id: str = ""
    status: str  # success | error
    filename: str | None = None
    urls: UploadUrls | None = None
    orientation: Orientation | None = None
    format: str | None = None
    tags: list[str] = Field(default_factory=list)
    sizes: ImageSizes | None = None
    expiry_time: datetime | None = None
    error: str | None = None
