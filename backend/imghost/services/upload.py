import asyncio
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from botocore.exceptions import BotoCoreError, ClientError
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from imghost.core.config import Settings, get_settings
from imghost.core.errors import FileTooLarge, TooManyFiles, UploadRejected
from imghost.models.enums import Orientation
from imghost.schemas.images import ImagePaths, ImageRecord, ImageSizes, UploadResult, UploadUrls
from imghost.services.cache import CacheService
from imghost.services.compression import CompressionOptions, Compressor
from imghost.services.image_info import ANIMATED_FORMATS, EXTENSIONS, ImageInfo, inspect_image
from imghost.services.metadata import MetadataService
from imghost.services.storage import BlobStore, public_url

logger = logging.getLogger(__name__)


def generate_image_id() -> str:
    return uuid4().hex


def generate_paths(image_id: str, orientation: Orientation, fmt: str) -> ImagePaths:
    original = f"original/{orientation.value}/{image_id}.{EXTENSIONS.get(fmt, fmt)}"
    if fmt in ANIMATED_FORMATS:
        return ImagePaths(original=original)
    return ImagePaths(
        original=original,
        webp=f"webp/{orientation.value}/{image_id}.webp",
        avif=f"avif/{orientation.value}/{image_id}.avif",
    )


def parse_tags(raw: str | None) -> list[str]:
    """Split a comma-separated tag string, dropping blanks and repeats."""
    if not raw:
        return []
    return list(dict.fromkeys(tag.strip() for tag in raw.split(",") if tag.strip()))


class UploadService:
    """Stores an uploaded image and its variants, then records its metadata."""

    def __init__(
        self,
        metadata: MetadataService,
        blobs: BlobStore,
        compressor: Compressor,
        cache: CacheService,
        settings: Settings | None = None,
    ):
        self.metadata = metadata
        self.blobs = blobs
        self.compressor = compressor
        self.cache = cache
        self.settings = settings or get_settings()
        self._background: set[asyncio.Task] = set()

    async def upload(
        self,
        filename: str,
        data: bytes,
        tags: Iterable[str] = (),
        expiry_minutes: int = 0,
        options: CompressionOptions | None = None,
    ) -> UploadResult:
        result = await self._store(filename, data, list(tags), expiry_minutes, options)
        self._schedule_invalidation()
        return result

    async def upload_many(
        self,
        files: Sequence[tuple[str, bytes]],
        tags: Iterable[str] = (),
        expiry_minutes: int = 0,
        options: CompressionOptions | None = None,
    ) -> list[UploadResult]:
        if len(files) > self.settings.max_upload_count:
            raise TooManyFiles(len(files), self.settings.max_upload_count)
        tags = list(tags)
        results: list[UploadResult] = []
        for filename, data in files:
            try:
                results.append(await self._store(filename, data, tags, expiry_minutes, options))
            except UploadRejected as exc:
                results.append(UploadResult(status="error", filename=filename, error=exc.detail))
            except (SQLAlchemyError, BotoCoreError, ClientError, OSError):
                logger.exception("Upload failed for file %s", filename)
                results.append(UploadResult(status="error", filename=filename, error=f"Failed to upload {filename}"))
        if any(r.status == "success" for r in results):
            await self._invalidate_caches()
        return results

    async def drain(self) -> None:
        """Wait for pending cache invalidations."""
        if self._background:
            await asyncio.gather(*self._background)

    async def _store(
        self,
        filename: str,
        data: bytes,
        tags: list[str],
        expiry_minutes: int,
        options: CompressionOptions | None,
    ) -> UploadResult:
        if len(data) > self.settings.max_upload_bytes:
            raise FileTooLarge(filename, self.settings.max_upload_bytes)
        info = inspect_image(data)
        image_id = generate_image_id()
        paths = generate_paths(image_id, info.orientation, info.format)
        sizes = await self._upload_blobs(data, info, paths, options)

        now = datetime.now(timezone.utc)
        expiry_time = now + timedelta(minutes=expiry_minutes) if expiry_minutes > 0 else None
        record = ImageRecord(
            id=image_id,
            original_name=filename,
            upload_time=now,
            expiry_time=expiry_time,
            orientation=info.orientation,
            format=info.format,
            width=info.width,
            height=info.height,
            paths=paths,
            sizes=sizes,
            tags=tags,
        )
        await self.metadata.save_image(record)
        return UploadResult(
            id=image_id,
            status="success",
            filename=filename,
            urls=UploadUrls(
                original=public_url(paths.original),
                webp=public_url(paths.webp),
                avif=public_url(paths.avif),
            ),
            orientation=info.orientation,
            format=info.format,
            tags=tags,
            sizes=sizes,
            expiry_time=expiry_time,
        )

    async def _upload_blobs(
        self,
        data: bytes,
        info: ImageInfo,
        paths: ImagePaths,
        options: CompressionOptions | None,
    ) -> ImageSizes:
        if info.is_animated_format:
            await asyncio.to_thread(self.blobs.upload, paths.original, data, info.content_type)
            return ImageSizes(original=len(data))

        _, compressed = await asyncio.gather(
            asyncio.to_thread(self.blobs.upload, paths.original, data, info.content_type),
            asyncio.to_thread(self.compressor.compress, data, info.format, options),
        )
        # Missing variants are stored as a copy of the original
        webp = (compressed.webp.data, "image/webp") if compressed.webp else (data, info.content_type)
        avif = (compressed.avif.data, "image/avif") if compressed.avif else (data, info.content_type)
        await asyncio.gather(
            asyncio.to_thread(self.blobs.upload, paths.webp, *webp),
            asyncio.to_thread(self.blobs.upload, paths.avif, *avif),
        )
        return ImageSizes(original=len(data), webp=len(webp[0]), avif=len(avif[0]))

    def _schedule_invalidation(self) -> None:
        task = asyncio.create_task(self._invalidate_caches())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _invalidate_caches(self) -> None:
        try:
            await asyncio.gather(
                self.cache.invalidate_images_list(),
                self.cache.invalidate_tags_list(),
            )
        except RedisError:
            logger.exception("Cache invalidation failed")
