from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import case, select
from sqlalchemy.orm import Session

from models import ROLE_ADMIN, ROLE_CREATOR, STATUS_ACTIVE, Gallery, GalleryRole, User
from services.batch import atomic
from services.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)


class RoleRegistry:
    """ギャラリーごとの管理権限（creator 1名 + 任意数の admin）を扱う。

    creator はギャラリー作成と同じバッチでのみ登録され、以降は変更・削除できない。
    admin の付与・剥奪・一覧は creator だけが行える。
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def bootstrap_creator(self, gallery: Gallery) -> GalleryRole:
        """ギャラリー作成バッチの中で所有者を creator として登録する。コミットは呼び出し側で行う。"""

        role = GalleryRole(
            gallery_id=gallery.id,
            user_id=gallery.user_id,
            role=ROLE_CREATOR,
            granted_at=datetime.utcnow(),
            granted_by=None,
        )
        self.session.add(role)
        return role

    def role_of(self, gallery_id: str, user_id: int) -> Optional[str]:
        return self.session.execute(
            select(GalleryRole.role).where(
                GalleryRole.gallery_id == gallery_id,
                GalleryRole.user_id == user_id,
            )
        ).scalar_one_or_none()

    def can_curate(self, gallery: Gallery, user_id: int) -> bool:
        """コレクションの編集や作品の並び替えを行えるかを判定する。"""

        if gallery.user_id == user_id:
            return True
        return self.role_of(gallery.id, user_id) in (ROLE_CREATOR, ROLE_ADMIN)

    def _require_creator(self, gallery_id: str, user_id: int) -> Gallery:
        gallery = self.session.get(Gallery, gallery_id)
        if gallery is None:
            raise NotFoundError("ギャラリーが見つかりません。")
        role = self.role_of(gallery_id, user_id)
        if role is None and gallery.user_id != user_id and gallery.status != STATUS_ACTIVE:
            raise NotFoundError("ギャラリーが見つかりません。")
        if role != ROLE_CREATOR:
            raise ForbiddenError("権限の管理はギャラリーの作成者のみが行えます。")
        return gallery

    def grant_admin(self, gallery_id: str, granter_id: int, target_username: str) -> GalleryRole:
        """指定ユーザーに admin 権限を付与する。"""

        self._require_creator(gallery_id, granter_id)

        target = self.session.execute(
            select(User).where(User.username == target_username)
        ).scalar_one_or_none()
        if target is None:
            raise NotFoundError("指定されたユーザーが見つかりません。")
        if target.id == granter_id:
            raise BadRequestError("自分自身に権限を付与することはできません。")
        if self.role_of(gallery_id, target.id) is not None:
            raise ConflictError("このユーザーは既に権限を持っています。")

        role = GalleryRole(
            gallery_id=gallery_id,
            user_id=target.id,
            role=ROLE_ADMIN,
            granted_at=datetime.utcnow(),
            granted_by=granter_id,
        )
        with atomic(self.session, label="grant_admin"):
            self.session.add(role)
        logger.info("Granted admin on gallery %s to user %s", gallery_id, target.id)
        return role

    def revoke(self, gallery_id: str, granter_id: int, target_user_id: int) -> None:
        """admin 権限を剥奪する。creator の権限は剥奪できない。"""

        self._require_creator(gallery_id, granter_id)

        role = self.session.get(GalleryRole, (gallery_id, target_user_id))
        if role is None:
            raise NotFoundError("指定されたユーザーの権限が見つかりません。")
        if role.role == ROLE_CREATOR:
            raise BadRequestError("作成者の権限は削除できません。")

        with atomic(self.session, label="revoke_role"):
            self.session.delete(role)
        logger.info("Revoked admin on gallery %s from user %s", gallery_id, target_user_id)

    def list_roles(self, gallery_id: str, requester_id: int) -> list[tuple[GalleryRole, User]]:
        """creator を先頭に、admin を付与日時の新しい順で返す。"""

        self._require_creator(gallery_id, requester_id)

        creator_first = case((GalleryRole.role == ROLE_CREATOR, 0), else_=1)
        rows = self.session.execute(
            select(GalleryRole, User)
            .join(User, User.id == GalleryRole.user_id)
            .where(GalleryRole.gallery_id == gallery_id)
            .order_by(creator_first, GalleryRole.granted_at.desc())
        ).all()
        return [(role, user) for role, user in rows]
