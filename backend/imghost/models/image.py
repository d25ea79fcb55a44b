from datetime import datetime

from sqlalchemy import BigInteger, Enum, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from imghost.db.base import Base
from imghost.db.types import UTCDateTime
from imghost.models.enums import Orientation


class Image(Base):
    __tablename__ = "images"

    # Ids come from the uploader, never from the database
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    upload_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expiry_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    orientation: Mapped[Orientation] = mapped_column(
        Enum(
            Orientation,
            name="orientation",
            values_callable=lambda members: [m.value for m in members],
            create_constraint=True,
        ),
        nullable=False,
    )
    format: Mapped[str] = mapped_column(String(16), nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    path_original: Mapped[str] = mapped_column(String(1024), nullable=False)
    path_webp: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    path_avif: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    size_original: Mapped[int] = mapped_column(BigInteger, nullable=False)
    size_webp: Mapped[int] = mapped_column(BigInteger, default=0, server_default=text("0"), nullable=False)
    size_avif: Mapped[int] = mapped_column(BigInteger, default=0, server_default=text("0"), nullable=False)

    __table_args__ = (
        Index("idx_images_orientation", "orientation"),
        Index(
            "idx_images_expiry_time",
            "expiry_time",
            postgresql_where=text("expiry_time IS NOT NULL"),
            sqlite_where=text("expiry_time IS NOT NULL"),
        ),
    )


Index("idx_images_upload_time", Image.upload_time.desc())
