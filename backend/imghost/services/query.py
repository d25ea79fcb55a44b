"""Predicate builders for image read queries.

Each filter is a standalone function returning a SQLAlchemy boolean clause
over ``images``; :class:`ImageQuery` collects the ones that apply. Tag
filters are expressed as ``images.id IN (subquery)`` so the outer query
never fans out into one row per matching tag.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import ColumnElement, Select, distinct, func, select

from imghost.models.enums import Orientation
from imghost.models.image import Image
from imghost.models.tag import Tag, image_tags


def _unique(names: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(names))


def _images_tagged_with(names: Iterable[str]) -> Select:
    return (
        select(image_tags.c.image_id)
        .join(Tag, Tag.id == image_tags.c.tag_id)
        .where(Tag.name.in_(list(names)))
    )


def orientation_is(orientation: Orientation) -> ColumnElement[bool]:
    return Image.orientation == orientation


def has_tag(name: str) -> ColumnElement[bool]:
    return Image.id.in_(_images_tagged_with([name]))


def has_all_tags(names: Iterable[str]) -> ColumnElement[bool]:
    """Image carries every one of ``names`` (AND semantics)."""
    wanted = _unique(names)
    matching = (
        _images_tagged_with(wanted)
        .group_by(image_tags.c.image_id)
        .having(func.count(distinct(Tag.name)) == len(wanted))
    )
    return Image.id.in_(matching)


def has_none_of_tags(names: Iterable[str]) -> ColumnElement[bool]:
    return Image.id.not_in(_images_tagged_with(_unique(names)))


def newest_first() -> tuple:
    # Upload times are distinct in practice; id breaks any tie deterministically
    return (Image.upload_time.desc(), Image.id.asc())


@dataclass(frozen=True)
class ImageQuery:
    orientation: Orientation | None = None
    tag: str | None = None
    all_tags: tuple[str, ...] = field(default_factory=tuple)
    exclude_tags: tuple[str, ...] = field(default_factory=tuple)

    def predicates(self) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []
        if self.tag:
            clauses.append(has_tag(self.tag))
        if self.all_tags:
            clauses.append(has_all_tags(self.all_tags))
        if self.exclude_tags:
            clauses.append(has_none_of_tags(self.exclude_tags))
        if self.orientation is not None:
            clauses.append(orientation_is(self.orientation))
        return clauses

    def apply(self, stmt: Select) -> Select:
        clauses = self.predicates()
        return stmt.where(*clauses) if clauses else stmt

    def select_images(self) -> Select:
        return self.apply(select(Image))

    def count_images(self) -> Select:
        return self.apply(select(func.count(distinct(Image.id))))
