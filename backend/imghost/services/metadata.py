"""Relational metadata store for uploaded images and their tags.

Every write runs inside one transaction (``async_sessionmaker.begin()``), so
an image row never becomes visible without its tag links, and a tag diff is
applied entirely or not at all. Missing entities are reported as ``None`` or
``False``; database errors propagate unchanged, including the
``IntegrityError`` raised when an image id is saved twice.

Association rows are removed by ``ON DELETE CASCADE`` on both foreign keys;
on SQLite this needs ``PRAGMA foreign_keys=ON`` (see ``imghost.db.session``).
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from sqlalchemy import delete, func, literal, select, true, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from imghost.models.enums import Orientation
from imghost.models.image import Image
from imghost.models.tag import Tag, image_tags
from imghost.schemas.images import (
    ImageFilters,
    ImagePage,
    ImagePaths,
    ImageRecord,
    ImageSizes,
    ImageUpdate,
    RandomFilters,
)
from imghost.schemas.tags import TagCount
from imghost.services.query import ImageQuery, newest_first

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _unique(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(names))


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _upsert_insert(session: AsyncSession, table):
    dialect = session.bind.dialect.name
    try:
        return _UPSERT_INSERTS[dialect](table)
    except KeyError:
        raise NotImplementedError(f"No upsert support for dialect {dialect!r}") from None


async def ensure_tags(session: AsyncSession, names: Iterable[str]) -> list[str]:
    """Idempotently create tags by name.

    Returns the names that did not exist before; an empty list means every
    name was already present.
    """
    wanted = _unique(names)
    if not wanted:
        return []
    tags = Tag.__table__
    stmt = (
        _upsert_insert(session, tags)
        .values([{"name": name} for name in wanted])
        .on_conflict_do_nothing(index_elements=[tags.c.name])
        .returning(tags.c.name)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def _link_image(session: AsyncSession, image_id: str, names: Sequence[str]) -> None:
    rows = select(literal(image_id, type_=image_tags.c.image_id.type), Tag.id).where(Tag.name.in_(names))
    stmt = (
        _upsert_insert(session, image_tags)
        .from_select(["image_id", "tag_id"], rows)
        .on_conflict_do_nothing()
    )
    await session.execute(stmt)


async def _link_images(session: AsyncSession, image_ids: Sequence[str], names: Sequence[str]) -> None:
    # Unknown image ids drop out of the join instead of tripping the foreign key
    rows = (
        select(Image.id, Tag.id)
        .select_from(Image)
        .join(Tag, true())
        .where(Image.id.in_(image_ids), Tag.name.in_(names))
    )
    stmt = (
        _upsert_insert(session, image_tags)
        .from_select(["image_id", "tag_id"], rows)
        .on_conflict_do_nothing()
    )
    await session.execute(stmt)


async def _unlink_images(session: AsyncSession, image_ids: Sequence[str], names: Sequence[str]) -> None:
    await session.execute(
        delete(image_tags).where(
            image_tags.c.image_id.in_(image_ids),
            image_tags.c.tag_id.in_(select(Tag.id).where(Tag.name.in_(names))),
        )
    )


async def _count_tagged(session: AsyncSession, name: str) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(image_tags)
        .join(Tag, Tag.id == image_tags.c.tag_id)
        .where(Tag.name == name)
    )
    return result.scalar_one()


def _to_record(image: Image, tags: list[str]) -> ImageRecord:
    return ImageRecord(
        id=image.id,
        original_name=image.original_name,
        upload_time=image.upload_time,
        expiry_time=image.expiry_time,
        orientation=image.orientation,
        format=image.format,
        width=image.width,
        height=image.height,
        paths=ImagePaths(
            original=image.path_original,
            webp=image.path_webp or "",
            avif=image.path_avif or "",
        ),
        sizes=ImageSizes(
            original=image.size_original,
            webp=image.size_webp,
            avif=image.size_avif,
        ),
        tags=tags,
    )


class MetadataService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    def _batch(self):
        """Session whose statements commit together or not at all."""
        return self._session_factory.begin()

    # ---- Image records ----

    async def save_image(self, record: ImageRecord) -> None:
        async with self._batch() as session:
            session.add(
                Image(
                    id=record.id,
                    original_name=record.original_name,
                    upload_time=record.upload_time,
                    expiry_time=record.expiry_time,
                    orientation=record.orientation,
                    format=record.format,
                    width=record.width,
                    height=record.height,
                    path_original=record.paths.original,
                    path_webp=record.paths.webp or None,
                    path_avif=record.paths.avif or None,
                    size_original=record.sizes.original,
                    size_webp=record.sizes.webp,
                    size_avif=record.sizes.avif,
                )
            )
            # The image row must exist before links can reference it
            await session.flush()
            tags = _unique(record.tags)
            if tags:
                await ensure_tags(session, tags)
                await _link_image(session, record.id, tags)
        logger.info("Saved image %s with %d tag(s)", record.id, len(record.tags))

    async def get_image(self, image_id: str) -> ImageRecord | None:
        async with self._session_factory() as session:
            return await self._get_image(session, image_id)

    async def update_image(self, image_id: str, changes: ImageUpdate) -> ImageRecord | None:
        current = await self.get_image(image_id)
        if current is None:
            return None

        removed: list[str] = []
        added: list[str] = []
        if "tags" in changes.model_fields_set and changes.tags is not None:
            old_tags = set(current.tags)
            new_tags = _unique(changes.tags)
            removed = [tag for tag in current.tags if tag not in new_tags]
            added = [tag for tag in new_tags if tag not in old_tags]

        expiry_changed = False
        if "expiry_time" in changes.model_fields_set:
            expiry_changed = _as_utc(changes.expiry_time) != current.expiry_time

        if not (removed or added or expiry_changed):
            return current

        async with self._batch() as session:
            if removed:
                await _unlink_images(session, [image_id], removed)
            if added:
                await ensure_tags(session, added)
                await _link_image(session, image_id, added)
            if expiry_changed:
                await session.execute(
                    update(Image).where(Image.id == image_id).values(expiry_time=changes.expiry_time)
                )
        logger.info(
            "Updated image %s: +%d/-%d tag(s)%s",
            image_id, len(added), len(removed), ", expiry changed" if expiry_changed else "",
        )
        return await self.get_image(image_id)

    async def delete_image(self, image_id: str) -> bool:
        images = Image.__table__
        async with self._batch() as session:
            result = await session.execute(delete(images).where(images.c.id == image_id))
        deleted = result.rowcount > 0
        if deleted:
            logger.info("Deleted image %s", image_id)
        return deleted

    # ---- Image queries ----

    async def list_image_ids(self, orientation: Orientation | None = None) -> list[str]:
        query = ImageQuery(orientation=orientation)
        async with self._session_factory() as session:
            result = await session.execute(query.apply(select(Image.id)).order_by(*newest_first()))
            return list(result.scalars().all())

    async def list_images(self, filters: ImageFilters) -> ImagePage:
        query = ImageQuery(orientation=filters.orientation, tag=filters.tag)
        offset = (filters.page - 1) * filters.limit
        async with self._session_factory() as session:
            total = (await session.execute(query.count_images())).scalar_one()
            result = await session.execute(
                query.select_images().order_by(*newest_first()).limit(filters.limit).offset(offset)
            )
            images = await self._with_tags(session, result.scalars().all())
        return ImagePage(images=images, total=total)

    async def get_random_image(self, filters: RandomFilters | None = None) -> ImageRecord | None:
        filters = filters or RandomFilters()
        query = ImageQuery(
            orientation=filters.orientation,
            all_tags=tuple(filters.tags),
            exclude_tags=tuple(filters.exclude),
        )
        async with self._session_factory() as session:
            result = await session.execute(
                query.apply(select(Image.id)).order_by(func.random()).limit(1)
            )
            image_id = result.scalar_one_or_none()
            if image_id is None:
                return None
            return await self._get_image(session, image_id)

    async def list_expired_images(self, now: datetime | None = None) -> list[ImageRecord]:
        now = _as_utc(now) or datetime.now(timezone.utc)
        async with self._session_factory() as session:
            result = await session.execute(
                select(Image)
                .where(Image.expiry_time.is_not(None), Image.expiry_time < now)
                .order_by(Image.expiry_time)
            )
            return await self._with_tags(session, result.scalars().all())

    # ---- Tags ----

    async def list_tags(self) -> list[TagCount]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Tag.name, func.count(image_tags.c.image_id))
                .outerjoin(image_tags, image_tags.c.tag_id == Tag.id)
                .group_by(Tag.id, Tag.name)
                .order_by(Tag.name)
            )
            return [TagCount(name=name, count=count) for name, count in result.all()]

    async def create_tag(self, name: str) -> bool:
        """Create ``name`` if missing. Returns False when it already existed."""
        async with self._batch() as session:
            created = await ensure_tags(session, [name])
        return bool(created)

    async def rename_tag(self, old_name: str, new_name: str) -> int:
        """Rename in place; links follow the tag id, not its name.

        The returned count is read before the rename and may be stale if
        another writer touches the tag concurrently.
        """
        tags = Tag.__table__
        async with self._batch() as session:
            count = await _count_tagged(session, old_name)
            await session.execute(update(tags).where(tags.c.name == old_name).values(name=new_name))
        logger.info("Renamed tag %r to %r (%d image(s))", old_name, new_name, count)
        return count

    async def delete_tag(self, name: str) -> int:
        """Delete the tag and, by cascade, its links. Same stale-count caveat as rename."""
        tags = Tag.__table__
        async with self._batch() as session:
            count = await _count_tagged(session, name)
            await session.execute(delete(tags).where(tags.c.name == name))
        logger.info("Deleted tag %r (%d image(s))", name, count)
        return count

    async def batch_update_tags(
        self,
        image_ids: Sequence[str],
        add_tags: Sequence[str],
        remove_tags: Sequence[str],
    ) -> int:
        ids = _unique(image_ids)
        if not ids:
            return 0
        add = _unique(add_tags)
        remove = _unique(remove_tags)
        async with self._batch() as session:
            # Removals first: a name in both lists ends up linked
            if remove:
                await _unlink_images(session, ids, remove)
            if add:
                await ensure_tags(session, add)
                await _link_images(session, ids, add)
        logger.info("Batch tag update on %d image(s): +%s -%s", len(ids), add, remove)
        return len(image_ids)

    # ---- Helpers ----

    async def _get_image(self, session: AsyncSession, image_id: str) -> ImageRecord | None:
        result = await session.execute(select(Image).where(Image.id == image_id))
        image = result.scalar_one_or_none()
        if image is None:
            return None
        records = await self._with_tags(session, [image])
        return records[0]

    async def _with_tags(self, session: AsyncSession, images: Sequence[Image]) -> list[ImageRecord]:
        """Attach tag names to each image with one batched lookup."""
        if not images:
            return []
        result = await session.execute(
            select(image_tags.c.image_id, Tag.name)
            .join(Tag, Tag.id == image_tags.c.tag_id)
            .where(image_tags.c.image_id.in_([image.id for image in images]))
            .order_by(Tag.name)
        )
        tag_map: dict[str, list[str]] = {}
        for image_id, name in result.all():
            tag_map.setdefault(image_id, []).append(name)
        return [_to_record(image, tag_map.get(image.id, [])) for image in images]
