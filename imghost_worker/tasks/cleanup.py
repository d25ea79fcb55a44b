import asyncio
import logging
from datetime import datetime

from botocore.exceptions import BotoCoreError, ClientError

from imghost.services.cache import CacheService
from imghost.services.metadata import MetadataService
from imghost.services.storage import BlobStore
from imghost_worker.app import celery_app
from imghost_worker.utils.db import dispose_engine, get_metadata_service, run_async

logger = logging.getLogger(__name__)


async def sweep_expired_images(
    metadata: MetadataService,
    blobs: BlobStore,
    cache: CacheService,
    now: datetime | None = None,
) -> int:
    """Delete every image whose expiry time has passed.

    Blobs are removed before the record, so a failed blob delete leaves the
    image listed for the next sweep. Caches are invalidated whenever at least
    one image went away, even if a later record raised.
    """
    expired = await metadata.list_expired_images(now)
    deleted = 0
    try:
        for record in expired:
            paths = (record.paths.original, record.paths.webp, record.paths.avif)
            try:
                await asyncio.to_thread(blobs.delete, *paths)
            except (BotoCoreError, ClientError, OSError):
                logger.exception("Failed to delete blobs for expired image %s", record.id)
                continue
            if await metadata.delete_image(record.id):
                deleted += 1
    finally:
        if deleted:
            await cache.invalidate_images_list()
            await cache.invalidate_tags_list()
    logger.info("Expiry sweep removed %d of %d expired image(s)", deleted, len(expired))
    return deleted


@celery_app.task(name="cleanup_expired_images")
def cleanup_expired_images() -> int:
    async def _run() -> int:
        cache = CacheService()
        try:
            return await sweep_expired_images(get_metadata_service(), BlobStore(), cache)
        finally:
            await cache.close()
            await dispose_engine()

    return run_async(_run)
