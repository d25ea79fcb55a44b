"""initial schema: images, tags, image_tags

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table(
        "images",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("upload_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expiry_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "orientation",
            sa.Enum("landscape", "portrait", name="orientation", create_constraint=True),
            nullable=False,
        ),
        sa.Column("format", sa.String(16), nullable=False),
        sa.Column("width", sa.Integer(), nullable=False),
        sa.Column("height", sa.Integer(), nullable=False),
        sa.Column("path_original", sa.String(1024), nullable=False),
        sa.Column("path_webp", sa.String(1024), nullable=True),
        sa.Column("path_avif", sa.String(1024), nullable=True),
        sa.Column("size_original", sa.BigInteger(), nullable=False),
        sa.Column("size_webp", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("size_avif", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("idx_images_orientation", "images", ["orientation"])
    op.create_index("idx_images_upload_time", "images", [sa.text("upload_time DESC")])
    op.create_index(
        "idx_images_expiry_time",
        "images",
        ["expiry_time"],
        postgresql_where=sa.text("expiry_time IS NOT NULL"),
        sqlite_where=sa.text("expiry_time IS NOT NULL"),
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
    )
    op.create_index("idx_tags_name", "tags", ["name"])

    op.create_table(
        "image_tags",
        sa.Column("image_id", sa.String(64), sa.ForeignKey("images.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("tag_id", sa.Integer(), sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_index("idx_image_tags_tag_id", "image_tags", ["tag_id"])
    op.create_index("idx_image_tags_image_id", "image_tags", ["image_id"])


def downgrade() -> None:
    op.drop_table("image_tags")
    op.drop_table("tags")
    op.drop_index("idx_images_expiry_time", table_name="images")
    op.drop_index("idx_images_upload_time", table_name="images")
    op.drop_index("idx_images_orientation", table_name="images")
    op.drop_table("images")
    sa.Enum(name="orientation").drop(op.get_bind(), checkfirst=True)
