from dataclasses import dataclass
from io import BytesIO

from PIL import Image as PILImage
from PIL import UnidentifiedImageError

from imghost.core.errors import UnsupportedFormat
from imghost.models.enums import Orientation

SUPPORTED_FORMATS = ("jpeg", "png", "gif", "webp", "avif")

# Formats stored as-is, without WebP/AVIF variants
ANIMATED_FORMATS = ("gif",)

CONTENT_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "avif": "image/avif",
}

EXTENSIONS = {
    "jpeg": "jpg",
    "png": "png",
    "gif": "gif",
    "webp": "webp",
    "avif": "avif",
}


@dataclass(frozen=True)
class ImageInfo:
    format: str
    width: int
    height: int
    orientation: Orientation

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES.get(self.format, "application/octet-stream")

    @property
    def is_animated_format(self) -> bool:
        return self.format in ANIMATED_FORMATS


def inspect_image(data: bytes) -> ImageInfo:
    """Read format and dimensions from the image header.

    Raises ``UnsupportedFormat`` for anything Pillow cannot identify or that
    is not one of ``SUPPORTED_FORMATS``.
    """
    try:
        with PILImage.open(BytesIO(data)) as img:
            fmt = (img.format or "").lower()
            width, height = img.size
    except UnidentifiedImageError:
        raise UnsupportedFormat("unknown") from None
    if fmt not in SUPPORTED_FORMATS:
        raise UnsupportedFormat(fmt or "unknown")
    return ImageInfo(
        format=fmt,
        width=width,
        height=height,
        orientation=Orientation.from_dimensions(width, height),
    )
