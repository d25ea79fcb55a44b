from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
import pytest_asyncio
from sqlalchemy import text

from imghost.db.base import Base
from imghost.db.session import create_engine, create_sessionmaker
from imghost.models.enums import Orientation
from imghost.schemas.images import ImagePaths, ImageRecord, ImageSizes
from imghost.services.metadata import MetadataService

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'imghost.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_sessionmaker(engine)


@pytest.fixture
def metadata(session_factory):
    return MetadataService(session_factory)


@pytest.fixture
def make_record():
    """Build ImageRecords with strictly increasing upload times."""
    ticks = count()

    def _make(
        image_id: str,
        tags: list[str] | None = None,
        orientation: Orientation = Orientation.LANDSCAPE,
        expiry_time: datetime | None = None,
        fmt: str = "png",
    ) -> ImageRecord:
        width, height = (800, 600) if orientation is Orientation.LANDSCAPE else (600, 800)
        animated = fmt == "gif"
        return ImageRecord(
            id=image_id,
            original_name=f"{image_id}.{fmt}",
            upload_time=BASE_TIME + timedelta(minutes=next(ticks)),
            expiry_time=expiry_time,
            orientation=orientation,
            format=fmt,
            width=width,
            height=height,
            paths=ImagePaths(
                original=f"original/{orientation.value}/{image_id}.{fmt}",
                webp="" if animated else f"webp/{orientation.value}/{image_id}.webp",
                avif="" if animated else f"avif/{orientation.value}/{image_id}.avif",
            ),
            sizes=ImageSizes(
                original=4096,
                webp=0 if animated else 1024,
                avif=0 if animated else 900,
            ),
            tags=tags or [],
        )

    return _make


@pytest.fixture
def count_dangling(session_factory):
    """Number of image_tags rows whose image or tag no longer exists."""
    async def _count() -> int:
        async with session_factory() as session:
            result = await session.execute(
                text(
                    "SELECT COUNT(*) FROM image_tags it "
                    "LEFT JOIN images i ON i.id = it.image_id "
                    "LEFT JOIN tags t ON t.id = it.tag_id "
                    "WHERE i.id IS NULL OR t.id IS NULL"
                )
            )
            return result.scalar_one()

    return _count


@pytest.fixture
def count_links(session_factory):
    async def _count(image_id: str | None = None) -> int:
        sql = "SELECT COUNT(*) FROM image_tags"
        params = {}
        if image_id is not None:
            sql += " WHERE image_id = :image_id"
            params["image_id"] = image_id
        async with session_factory() as session:
            result = await session.execute(text(sql), params)
            return result.scalar_one()

    return _count
