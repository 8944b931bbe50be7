"""読み取り可否と編集権限の判定。

見えないリソースは NotFound、見えているが権限がない場合のみ Forbidden とする。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import (
    ROLE_ADMIN,
    ROLE_CREATOR,
    STATUS_ACTIVE,
    STATUS_DELETED,
    Artwork,
    Collection,
    Gallery,
)
from services.errors import ForbiddenError, NotFoundError
from services.roles import RoleRegistry


def gallery_visible(gallery: Gallery, user_id: Optional[int], role: Optional[str] = None) -> bool:
    if user_id is not None and gallery.user_id == user_id:
        return True
    if role in (ROLE_CREATOR, ROLE_ADMIN):
        return True
    return gallery.status == STATUS_ACTIVE


def collection_visible(
    collection: Collection, gallery: Gallery, user_id: Optional[int], role: Optional[str] = None
) -> bool:
    if not gallery_visible(gallery, user_id, role):
        return False
    if (user_id is not None and gallery.user_id == user_id) or role in (ROLE_CREATOR, ROLE_ADMIN):
        return True
    return collection.status == STATUS_ACTIVE


def artwork_visible(artwork: Artwork, user_id: Optional[int]) -> bool:
    if artwork.status == STATUS_DELETED:
        return False
    if user_id is not None and artwork.user_id == user_id:
        return True
    return artwork.status == STATUS_ACTIVE and bool(artwork.is_public)


def load_gallery_for_owner(session: Session, gallery_id: str, user_id: int, *, lock: bool = False) -> Gallery:
    """所有者としてギャラリーを取得する。"""

    stmt = select(Gallery).where(Gallery.id == gallery_id)
    if lock:
        stmt = stmt.with_for_update()
    gallery = session.execute(stmt).scalar_one_or_none()
    if gallery is None:
        raise NotFoundError("ギャラリーが見つかりません。")
    if gallery.user_id != user_id:
        roles = RoleRegistry(session)
        if not gallery_visible(gallery, user_id, roles.role_of(gallery.id, user_id)):
            raise NotFoundError("ギャラリーが見つかりません。")
        raise ForbiddenError("このギャラリーを変更する権限がありません。")
    return gallery


def load_collection(
    session: Session,
    collection_id: str,
    user_id: int,
    *,
    curate: bool = False,
    lock: bool = False,
) -> tuple[Collection, Gallery]:
    """コレクションと親ギャラリーを取得する。

    `curate=False` は所有者のみ、`curate=True` はギャラリーの creator / admin にも許可する。
    `lock=True` の場合はトランザクション終了までコレクション行をロックする。
    """

    stmt = select(Collection).where(Collection.id == collection_id)
    if lock:
        stmt = stmt.with_for_update()
    collection = session.execute(stmt).scalar_one_or_none()
    if collection is None:
        raise NotFoundError("コレクションが見つかりません。")

    gallery = session.get(Gallery, collection.gallery_id)
    if gallery.user_id == user_id:
        return collection, gallery

    role = RoleRegistry(session).role_of(gallery.id, user_id)
    if curate and role in (ROLE_CREATOR, ROLE_ADMIN):
        return collection, gallery
    if not collection_visible(collection, gallery, user_id, role):
        raise NotFoundError("コレクションが見つかりません。")
    raise ForbiddenError("このコレクションを変更する権限がありません。")
