import logging
from dataclasses import dataclass
from io import BytesIO

from PIL import Image as PILImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompressionOptions:
    quality: int = 80
    max_width: int | None = None
    max_height: int | None = None


@dataclass(frozen=True)
class CompressedImage:
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class CompressionResult:
    webp: CompressedImage | None = None
    avif: CompressedImage | None = None


class Compressor:
    """Re-encodes uploads as WebP and AVIF with Pillow.

    A variant whose encoder is missing from the installed Pillow, or that
    fails to encode, comes back as ``None`` so the caller can fall back to
    the original bytes.
    """

    def compress(self, data: bytes, fmt: str, options: CompressionOptions | None = None) -> CompressionResult:
        options = options or CompressionOptions()
        with PILImage.open(BytesIO(data)) as img:
            img.load()
            frame = self._prepare(img, options)
        return CompressionResult(
            webp=self._encode(frame, "WEBP", options),
            avif=self._encode(frame, "AVIF", options),
        )

    def _prepare(self, img: PILImage.Image, options: CompressionOptions) -> PILImage.Image:
        frame = img.convert("RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB")
        if options.max_width or options.max_height:
            # thumbnail() keeps the aspect ratio and never upscales
            frame.thumbnail((options.max_width or frame.width, options.max_height or frame.height))
        return frame

    def _encode(self, frame: PILImage.Image, fmt: str, options: CompressionOptions) -> CompressedImage | None:
        PILImage.init()
        if fmt not in PILImage.SAVE:
            logger.warning("Pillow has no %s encoder, keeping original bytes", fmt)
            return None
        buffer = BytesIO()
        try:
            frame.save(buffer, format=fmt, quality=options.quality)
        except (OSError, ValueError) as exc:
            logger.warning("%s encoding failed, keeping original bytes: %s", fmt, exc)
            return None
        return CompressedImage(data=buffer.getvalue())
