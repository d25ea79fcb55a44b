import logging

from redis.asyncio import Redis

from imghost.core.config import get_settings

logger = logging.getLogger(__name__)

# Cached list pages live under this prefix, one key per filter/page combination
IMAGES_LIST_PREFIX = "images:list:"
TAGS_LIST_KEY = "tags:list"


def get_redis() -> Redis:
    settings = get_settings()
    return Redis.from_url(settings.redis_url, decode_responses=True)


class CacheService:
    """Invalidates the cached list views after metadata writes."""

    def __init__(self, redis: Redis | None = None):
        self._redis = redis or get_redis()

    async def invalidate_images_list(self) -> int:
        keys = [key async for key in self._redis.scan_iter(match=f"{IMAGES_LIST_PREFIX}*")]
        if keys:
            await self._redis.delete(*keys)
        logger.debug("Invalidated %d cached image list page(s)", len(keys))
        return len(keys)

    async def invalidate_tags_list(self) -> int:
        return await self._redis.delete(TAGS_LIST_KEY)

    async def close(self) -> None:
        await self._redis.aclose()
