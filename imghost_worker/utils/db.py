import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from imghost.core.config import get_settings
from imghost.db.session import create_engine, create_sessionmaker
from imghost.services.metadata import MetadataService

# One engine per event loop: each Celery task runs its own asyncio.run(), and
# asyncpg connections cannot cross loops.
_engine_cache: dict[int, AsyncEngine] = {}


def _get_engine() -> AsyncEngine:
    loop = asyncio.get_running_loop()
    loop_id = id(loop)
    if loop_id not in _engine_cache:
        # Engines left behind by finished tasks belong to closed loops
        for old_id in list(_engine_cache):
            if old_id != loop_id:
                _engine_cache.pop(old_id, None)
        _engine_cache[loop_id] = create_engine(get_settings().database_url)
    return _engine_cache[loop_id]


def get_metadata_service() -> MetadataService:
    """Metadata store bound to the current loop's engine."""
    return MetadataService(create_sessionmaker(_get_engine()))


async def dispose_engine() -> None:
    """Release the current loop's pool; tasks call this before returning."""
    loop_id = id(asyncio.get_running_loop())
    engine = _engine_cache.pop(loop_id, None)
    if engine:
        await engine.dispose()


def run_async(fn: Callable[[], Awaitable[Any]]) -> Any:
    return asyncio.run(fn())
