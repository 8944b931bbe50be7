"""初期スキーマを作成する。

リビジョンID: 20261019_01_initial_schema
親リビジョン: なし
作成日時: 2026-10-19 10:30:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import mysql

# Alembic 用の識別子
revision = "20261019_01_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

STATUS_CHECK = "status IN ('active','archived','draft','deleted')"


def upgrade() -> None:
    """初期スキーマを作成する。"""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=80), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("artwork_limit", sa.Integer(), nullable=False, server_default="5000"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "themes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column(
            "styles",
            sa.JSON().with_variant(mysql.JSON(), "mysql"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "galleries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slug", sa.String(length=80), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("welcome_message", sa.Text(), nullable=True),
        sa.Column("theme_id", sa.String(length=36), sa.ForeignKey("themes.id"), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "slug", name="uq_galleries_user_slug"),
        sa.CheckConstraint(STATUS_CHECK, name="ck_galleries_status"),
    )

    op.create_table(
        "collections",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "gallery_id",
            sa.String(length=36),
            sa.ForeignKey("galleries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slug", sa.String(length=80), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("hero_image_url", sa.String(length=1024), nullable=True),
        sa.Column("theme_id", sa.String(length=36), sa.ForeignKey("themes.id"), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("gallery_id", "slug", name="uq_collections_gallery_slug"),
        sa.CheckConstraint(STATUS_CHECK, name="ck_collections_status"),
    )
    op.create_index("ix_collections_gallery_id", "collections", ["gallery_id"], unique=False)

    op.create_table(
        "artworks",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slug", sa.String(length=80), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("materials", sa.String(length=500), nullable=True),
        sa.Column("dimensions", sa.String(length=200), nullable=True),
        sa.Column("created_date", sa.String(length=10), nullable=True),
        sa.Column("category", sa.String(length=40), nullable=False),
        sa.Column(
            "tags",
            sa.JSON().with_variant(mysql.JSON(), "mysql"),
            nullable=True,
        ),
        sa.Column("image_key", sa.String(length=1024), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("is_featured", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "slug", name="uq_artworks_user_slug"),
        sa.CheckConstraint(STATUS_CHECK, name="ck_artworks_status"),
    )
    op.create_index("ix_artworks_user_id", "artworks", ["user_id"], unique=False)

    op.create_table(
        "collection_artworks",
        sa.Column(
            "collection_id",
            sa.String(length=36),
            sa.ForeignKey("collections.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "artwork_id",
            sa.String(length=36),
            sa.ForeignKey("artworks.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("added_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_collection_artworks_artwork_id",
        "collection_artworks",
        ["artwork_id"],
        unique=False,
    )

    op.create_table(
        "gallery_roles",
        sa.Column(
            "gallery_id",
            sa.String(length=36),
            sa.ForeignKey("galleries.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("granted_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("granted_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.CheckConstraint("role IN ('creator','admin')", name="ck_gallery_roles_role"),
    )


def downgrade() -> None:
    """初期スキーマを削除する。"""
    op.drop_table("gallery_roles")

    op.drop_index("ix_collection_artworks_artwork_id", table_name="collection_artworks")
    op.drop_table("collection_artworks")

    op.drop_index("ix_artworks_user_id", table_name="artworks")
    op.drop_table("artworks")

    op.drop_index("ix_collections_gallery_id", table_name="collections")
    op.drop_table("collections")

    op.drop_table("galleries")
    op.drop_table("themes")
    op.drop_table("users")
