from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from flask import current_app
from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db, login_manager

STATUS_ACTIVE = "active"
STATUS_ARCHIVED = "archived"
STATUS_DRAFT = "draft"
STATUS_DELETED = "deleted"
RESOURCE_STATUSES = (STATUS_ACTIVE, STATUS_ARCHIVED, STATUS_DRAFT, STATUS_DELETED)

ROLE_CREATOR = "creator"
ROLE_ADMIN = "admin"

DEFAULT_GALLERY_NAME = "My Gallery"
DEFAULT_GALLERY_SLUG = "my-gallery"
DEFAULT_COLLECTION_NAME = "My Collection"
DEFAULT_COLLECTION_SLUG = "my-collection"


def new_id() -> str:
    return str(uuid4())


class User(db.Model, UserMixin):
    """アプリ利用者を表すモデル。"""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="user")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    artwork_limit = db.Column(db.Integer, nullable=False, default=5000)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login_at = db.Column(db.DateTime, nullable=True)

    galleries = db.relationship("Gallery", back_populates="owner", lazy=True)

    def set_password(self, raw_password: str) -> None:
        """平文パスワードを安全なハッシュに変換して保存する。"""

        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        """入力パスワードと保存済みハッシュを照合する。"""

        return check_password_hash(self.password_hash, raw_password)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_initial_user(self) -> bool:
        """イニシャルユーザーかどうかを判定する。"""

        username = current_app.config.get("INITIAL_USER_USERNAME")
        email = current_app.config.get("INITIAL_USER_EMAIL")
        if not username or not email:
            return False
        return self.username == username and self.email == email


class Theme(db.Model):
    """ギャラリー・コレクションに適用する表示テーマ。"""

    __tablename__ = "themes"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    is_system = db.Column(db.Boolean, nullable=False, default=False)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    styles = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Gallery(db.Model):
    """ユーザーが所有する最上位のコンテナ。"""

    __tablename__ = "galleries"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    slug = db.Column(db.String(80), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    welcome_message = db.Column(db.Text, nullable=True)
    theme_id = db.Column(db.String(36), db.ForeignKey("themes.id"), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    owner = db.relationship("User", back_populates="galleries")
    theme = db.relationship("Theme")

    __table_args__ = (
        db.UniqueConstraint("user_id", "slug", name="uq_galleries_user_slug"),
        db.CheckConstraint(
            "status IN ('active','archived','draft','deleted')",
            name="ck_galleries_status",
        ),
    )


class Collection(db.Model):
    """ギャラリー内で作品を順序付きでまとめるグループ。"""

    __tablename__ = "collections"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    gallery_id = db.Column(
        db.String(36), db.ForeignKey("galleries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slug = db.Column(db.String(80), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    hero_image_url = db.Column(db.String(1024), nullable=True)
    theme_id = db.Column(db.String(36), db.ForeignKey("themes.id"), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    gallery = db.relationship("Gallery")
    theme = db.relationship("Theme")

    __table_args__ = (
        db.UniqueConstraint("gallery_id", "slug", name="uq_collections_gallery_slug"),
        db.CheckConstraint(
            "status IN ('active','archived','draft','deleted')",
            name="ck_collections_status",
        ),
    )


class Artwork(db.Model):
    """ユーザーが所有する作品。コレクションへの所属は別テーブルで管理する。"""

    __tablename__ = "artworks"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    slug = db.Column(db.String(80), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    materials = db.Column(db.String(500), nullable=True)
    dimensions = db.Column(db.String(200), nullable=True)
    created_date = db.Column(db.String(10), nullable=True)
    category = db.Column(db.String(40), nullable=False, default="other")
    tags = db.Column(db.JSON, nullable=True)
    image_key = db.Column(db.String(1024), nullable=False)
    is_public = db.Column(db.Boolean, nullable=False, default=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "slug", name="uq_artworks_user_slug"),
        db.CheckConstraint(
            "status IN ('active','archived','draft','deleted')",
            name="ck_artworks_status",
        ),
    )


class CollectionArtwork(db.Model):
    """コレクションと作品の順序付き所属。position は 0 始まりで連番を保つ。"""

    __tablename__ = "collection_artworks"

    collection_id = db.Column(
        db.String(36), db.ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True
    )
    artwork_id = db.Column(
        db.String(36), db.ForeignKey("artworks.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    position = db.Column(db.Integer, nullable=False)
    added_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    artwork = db.relationship("Artwork")


class GalleryRole(db.Model):
    """ギャラリーに対する管理権限。creator は1件のみで削除不可。"""

    __tablename__ = "gallery_roles"

    gallery_id = db.Column(
        db.String(36), db.ForeignKey("galleries.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role = db.Column(db.String(16), nullable=False)
    granted_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    granted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        db.CheckConstraint("role IN ('creator','admin')", name="ck_gallery_roles_role"),
    )


@login_manager.user_loader
def load_user(user_id: str) -> Optional[User]:
    """ログインセッションからユーザーを復元する。"""

    if user_id is None:
        return None
    return db.session.get(User, int(user_id))
