from sqlalchemy import Column, ForeignKey, Index, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column

from imghost.db.base import Base

# M2M association table
image_tags = Table(
    "image_tags",
    Base.metadata,
    Column("image_id", String(64), ForeignKey("images.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_image_tags_tag_id", "tag_id"),
    Index("idx_image_tags_image_id", "image_id"),
)


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    __table_args__ = (
        Index("idx_tags_name", "name"),
    )
