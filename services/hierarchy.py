"""ギャラリー・コレクション・作品の作成、更新、削除、参照。

書き込みはすべて `atomic()` の1バッチで行い、途中で失敗した場合は何も残さない。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy import Delete, Select, delete, func, select
from sqlalchemy.orm import Session

from models import (
    DEFAULT_COLLECTION_NAME,
    DEFAULT_COLLECTION_SLUG,
    DEFAULT_GALLERY_NAME,
    ROLE_ADMIN,
    ROLE_CREATOR,
    STATUS_ACTIVE,
    STATUS_DELETED,
    Artwork,
    Collection,
    CollectionArtwork,
    Gallery,
    GalleryRole,
    Theme,
    User,
    new_id,
)
from services.access import (
    artwork_visible,
    collection_visible,
    gallery_visible,
    load_collection,
    load_gallery_for_owner,
)
from services.batch import atomic
from services.errors import BadRequestError, ForbiddenError, NotFoundError, QuotaExceededError
from services.mappings import UNSET, ArtworkPatch, CollectionPatch, GalleryPatch, apply_patch
from services.membership import MembershipOrderer
from services.roles import RoleRegistry
from services.slugs import SlugAllocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Limits:
    """ユーザーごとの所有数の上限。作品数の上限は users.artwork_limit を使う。"""

    gallery_limit: int = 500
    collection_limit: int = 1000

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Limits":
        return cls(
            gallery_limit=int(config.get("GALLERY_LIMIT", cls.gallery_limit)),
            collection_limit=int(config.get("COLLECTION_LIMIT", cls.collection_limit)),
        )


@dataclass
class Page:
    items: list
    total: int
    page: int
    page_size: int


@dataclass
class CollectionSummary:
    collection: Collection
    artwork_count: int


@dataclass
class GalleryDetail:
    gallery: Gallery
    collections: list[CollectionSummary] = field(default_factory=list)


@dataclass
class CollectionDetail:
    collection: Collection
    gallery: Gallery
    artworks: list[tuple[CollectionArtwork, Artwork]] = field(default_factory=list)


@dataclass
class ArtworkDetail:
    artwork: Artwork
    collections: Optional[list[tuple[Collection, int]]] = None


def gallery_cascade_statements(gallery_id: str) -> list[Delete]:
    """ギャラリー削除時に発行する DELETE 文を、子から親の順で返す。

    作品そのものは削除しない。
    """

    collection_ids = select(Collection.id).where(Collection.gallery_id == gallery_id)
    return [
        delete(CollectionArtwork).where(CollectionArtwork.collection_id.in_(collection_ids)),
        delete(Collection).where(Collection.gallery_id == gallery_id),
        delete(GalleryRole).where(GalleryRole.gallery_id == gallery_id),
        delete(Gallery).where(Gallery.id == gallery_id),
    ]


def collection_cascade_statements(collection_id: str) -> list[Delete]:
    """コレクション削除時に発行する DELETE 文を、子から親の順で返す。"""

    return [
        delete(CollectionArtwork).where(CollectionArtwork.collection_id == collection_id),
        delete(Collection).where(Collection.id == collection_id),
    ]


class HierarchyStore:
    """ギャラリー階層の永続化と整合性の維持を担う。

    セッションはリクエストごとに呼び出し側から渡す。所有者・権限の確認は
    書き込みより前に行い、確認に失敗した場合は何も書き込まない。
    """

    def __init__(self, session: Session, limits: Optional[Limits] = None) -> None:
        self.session = session
        self.limits = limits or Limits()
        self.roles = RoleRegistry(session)
        self.memberships = MembershipOrderer(session)
        self.gallery_slugs = SlugAllocator(session, Gallery, "user_id")
        self.collection_slugs = SlugAllocator(session, Collection, "gallery_id")
        self.artwork_slugs = SlugAllocator(session, Artwork, "user_id")

    # ------------------------------------------------------------------
    # ギャラリー
    # ------------------------------------------------------------------

    def create_gallery(
        self,
        owner_id: int,
        name: str,
        description: Optional[str] = None,
        welcome_message: Optional[str] = None,
    ) -> Gallery:
        """ギャラリーを作成し、creator 権限とデフォルトコレクションを同時に登録する。"""

        with atomic(self.session, label="create_gallery"):
            self._lock_owner(owner_id)
            count = self.session.execute(
                select(func.count(Gallery.id)).where(
                    Gallery.user_id == owner_id,
                    Gallery.status != STATUS_DELETED,
                )
            ).scalar_one()
            if count >= self.limits.gallery_limit:
                raise QuotaExceededError(
                    f"ギャラリーは最大{self.limits.gallery_limit}件まで作成できます。"
                )
            # デフォルトコレクションもコレクション数に含める
            self._check_collection_quota(owner_id)
            gallery = self._insert_gallery(
                owner_id,
                name,
                description=description,
                welcome_message=welcome_message,
                is_default=False,
            )
        logger.info("Created gallery %s for user %s", gallery.id, owner_id)
        return gallery

    def bootstrap_default_gallery(self, owner_id: int) -> Gallery:
        """新規ユーザーのデフォルトギャラリーを登録する。コミットは呼び出し側で行う。"""

        return self._insert_gallery(owner_id, DEFAULT_GALLERY_NAME, is_default=True)

    def _insert_gallery(
        self,
        owner_id: int,
        name: str,
        *,
        description: Optional[str] = None,
        welcome_message: Optional[str] = None,
        is_default: bool,
    ) -> Gallery:
        now = datetime.utcnow()
        gallery = Gallery(
            id=new_id(),
            user_id=owner_id,
            slug=self.gallery_slugs.allocate(owner_id, name),
            name=name,
            description=description or None,
            welcome_message=welcome_message or None,
            is_default=is_default,
            status=STATUS_ACTIVE,
            created_at=now,
            updated_at=now,
        )
        self.session.add(gallery)
        self.session.flush()
        self.roles.bootstrap_creator(gallery)
        self.session.add(
            Collection(
                id=new_id(),
                gallery_id=gallery.id,
                slug=DEFAULT_COLLECTION_SLUG,
                name=DEFAULT_COLLECTION_NAME,
                is_default=True,
                status=STATUS_ACTIVE,
                created_at=now,
                updated_at=now,
            )
        )
        return gallery

    def get_gallery(self, viewer_id: Optional[int], gallery_id: str) -> GalleryDetail:
        """ギャラリーと、閲覧者から見えるコレクションを返す。"""

        gallery = self.session.get(Gallery, gallery_id)
        if gallery is None:
            raise NotFoundError("ギャラリーが見つかりません。")
        role = self.roles.role_of(gallery.id, viewer_id) if viewer_id is not None else None
        if not gallery_visible(gallery, viewer_id, role):
            raise NotFoundError("ギャラリーが見つかりません。")

        collections = [
            collection
            for collection in self.session.execute(
                select(Collection)
                .where(Collection.gallery_id == gallery.id)
                .order_by(Collection.is_default.desc(), Collection.created_at.asc())
            ).scalars()
            if collection_visible(collection, gallery, viewer_id, role)
        ]
        counts = self._artwork_counts([collection.id for collection in collections])
        return GalleryDetail(
            gallery=gallery,
            collections=[
                CollectionSummary(collection, counts.get(collection.id, 0)) for collection in collections
            ],
        )

    def list_galleries(
        self,
        owner_id: int,
        *,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        """自分のギャラリーを (gallery, コレクション数) の組で返す。"""

        stmt = select(Gallery).where(Gallery.user_id == owner_id)
        if status:
            stmt = stmt.where(Gallery.status == status)
        stmt = stmt.order_by(Gallery.is_default.desc(), Gallery.created_at.desc(), Gallery.id)
        result = self._paginate(stmt, page, page_size)

        gallery_ids = [gallery.id for gallery in result.items]
        counts: dict[str, int] = {}
        if gallery_ids:
            counts = dict(
                self.session.execute(
                    select(Collection.gallery_id, func.count(Collection.id))
                    .where(Collection.gallery_id.in_(gallery_ids), Collection.status != STATUS_DELETED)
                    .group_by(Collection.gallery_id)
                ).all()
            )
        result.items = [(gallery, counts.get(gallery.id, 0)) for gallery in result.items]
        return result

    def update_gallery(self, actor_id: int, gallery_id: str, patch: GalleryPatch) -> Gallery:
        """指定された項目だけを更新する。名前を変更した場合はスラッグを振り直す。"""

        with atomic(self.session, label="update_gallery"):
            gallery = load_gallery_for_owner(self.session, gallery_id, actor_id)
            self._apply(gallery, patch, self.gallery_slugs, gallery.user_id, "name")
        return gallery

    def gallery_delete_info(self, actor_id: int, gallery_id: str) -> dict[str, Any]:
        """削除前の確認用に、削除される件数と削除可否を返す。"""

        gallery = load_gallery_for_owner(self.session, gallery_id, actor_id)
        collection_ids = select(Collection.id).where(Collection.gallery_id == gallery.id)
        collection_count = self.session.execute(
            select(func.count(Collection.id)).where(Collection.gallery_id == gallery.id)
        ).scalar_one()
        artwork_count = self.session.execute(
            select(func.count(func.distinct(CollectionArtwork.artwork_id))).where(
                CollectionArtwork.collection_id.in_(collection_ids)
            )
        ).scalar_one()
        return {
            "galleryId": gallery.id,
            "galleryName": gallery.name,
            "collectionCount": collection_count,
            "artworkCount": artwork_count,
            "canDelete": not gallery.is_default,
            "reason": "デフォルトギャラリーは削除できません。" if gallery.is_default else None,
        }

    def delete_gallery(self, actor_id: int, gallery_id: str) -> None:
        """ギャラリーとそのコレクション・所属・権限を削除する。作品は残す。"""

        with atomic(self.session, label="delete_gallery"):
            gallery = load_gallery_for_owner(self.session, gallery_id, actor_id, lock=True)
            if gallery.is_default:
                raise BadRequestError("デフォルトギャラリーは削除できません。")
            for statement in gallery_cascade_statements(gallery.id):
                self.session.execute(statement.execution_options(synchronize_session=False))
        logger.info("Deleted gallery %s by user %s", gallery_id, actor_id)

    # ------------------------------------------------------------------
    # コレクション
    # ------------------------------------------------------------------

    def create_collection(
        self,
        actor_id: int,
        gallery_id: str,
        name: str,
        description: Optional[str] = None,
    ) -> Collection:
        """ギャラリーの所有者としてコレクションを作成する。"""

        with atomic(self.session, label="create_collection"):
            gallery = load_gallery_for_owner(self.session, gallery_id, actor_id)
            self._lock_owner(gallery.user_id)
            self._check_collection_quota(gallery.user_id)
            now = datetime.utcnow()
            collection = Collection(
                id=new_id(),
                gallery_id=gallery.id,
                slug=self.collection_slugs.allocate(gallery.id, name),
                name=name,
                description=description or None,
                is_default=False,
                status=STATUS_ACTIVE,
                created_at=now,
                updated_at=now,
            )
            self.session.add(collection)
        logger.info("Created collection %s in gallery %s", collection.id, gallery_id)
        return collection

    def list_collections(
        self,
        viewer_id: Optional[int],
        gallery_id: str,
        *,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        """閲覧者から見えるコレクションを (collection, 作品数) の組で返す。"""

        gallery = self.session.get(Gallery, gallery_id)
        if gallery is None:
            raise NotFoundError("ギャラリーが見つかりません。")
        role = self.roles.role_of(gallery.id, viewer_id) if viewer_id is not None else None
        if not gallery_visible(gallery, viewer_id, role):
            raise NotFoundError("ギャラリーが見つかりません。")

        stmt = select(Collection).where(Collection.gallery_id == gallery.id)
        privileged = gallery.user_id == viewer_id or role in (ROLE_CREATOR, ROLE_ADMIN)
        if not privileged:
            stmt = stmt.where(Collection.status == STATUS_ACTIVE)
        stmt = stmt.order_by(Collection.is_default.desc(), Collection.created_at.asc(), Collection.id)
        result = self._paginate(stmt, page, page_size)
        counts = self._artwork_counts([collection.id for collection in result.items])
        result.items = [CollectionSummary(c, counts.get(c.id, 0)) for c in result.items]
        return result

    def get_collection(self, viewer_id: Optional[int], collection_id: str) -> CollectionDetail:
        """コレクションと、position 順の作品を返す。"""

        collection = self.session.get(Collection, collection_id)
        if collection is None:
            raise NotFoundError("コレクションが見つかりません。")
        gallery = self.session.get(Gallery, collection.gallery_id)
        role = self.roles.role_of(gallery.id, viewer_id) if viewer_id is not None else None
        if not collection_visible(collection, gallery, viewer_id, role):
            raise NotFoundError("コレクションが見つかりません。")

        privileged = gallery.user_id == viewer_id or role in (ROLE_CREATOR, ROLE_ADMIN)
        rows = self.session.execute(
            select(CollectionArtwork, Artwork)
            .join(Artwork, Artwork.id == CollectionArtwork.artwork_id)
            .where(CollectionArtwork.collection_id == collection.id)
            .order_by(CollectionArtwork.position.asc())
        ).all()
        artworks = [
            (membership, artwork)
            for membership, artwork in rows
            if privileged or artwork_visible(artwork, viewer_id)
        ]
        return CollectionDetail(collection=collection, gallery=gallery, artworks=artworks)

    def update_collection(self, actor_id: int, collection_id: str, patch: CollectionPatch) -> Collection:
        """ギャラリーの所有者または admin がコレクションを更新する。"""

        with atomic(self.session, label="update_collection"):
            collection, _ = load_collection(self.session, collection_id, actor_id, curate=True)
            self._apply(collection, patch, self.collection_slugs, collection.gallery_id, "name")
        return collection

    def delete_collection(self, actor_id: int, collection_id: str) -> None:
        """コレクションとその所属を削除する。作品は残す。"""

        with atomic(self.session, label="delete_collection"):
            collection, _ = load_collection(self.session, collection_id, actor_id, lock=True)
            if collection.is_default:
                raise BadRequestError("デフォルトコレクションは削除できません。")
            for statement in collection_cascade_statements(collection.id):
                self.session.execute(statement.execution_options(synchronize_session=False))
        logger.info("Deleted collection %s by user %s", collection_id, actor_id)

    def copy_collection(
        self,
        actor_id: int,
        collection_id: str,
        target_gallery_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Collection:
        """コレクションを複製する。自分の削除されていない作品の所属だけを引き継ぐ。"""

        with atomic(self.session, label="copy_collection"):
            source, _ = load_collection(self.session, collection_id, actor_id)
            target = load_gallery_for_owner(self.session, target_gallery_id or source.gallery_id, actor_id)
            self._lock_owner(actor_id)
            self._check_collection_quota(actor_id)

            new_name = name or f"{source.name} (Copy)"
            now = datetime.utcnow()
            duplicate = Collection(
                id=new_id(),
                gallery_id=target.id,
                slug=self.collection_slugs.allocate(target.id, new_name),
                name=new_name,
                description=source.description,
                hero_image_url=source.hero_image_url,
                theme_id=source.theme_id,
                is_default=False,
                status=STATUS_ACTIVE,
                created_at=now,
                updated_at=now,
            )
            self.session.add(duplicate)

            rows = self.session.execute(
                select(CollectionArtwork.artwork_id)
                .join(Artwork, Artwork.id == CollectionArtwork.artwork_id)
                .where(
                    CollectionArtwork.collection_id == source.id,
                    Artwork.user_id == actor_id,
                    Artwork.status != STATUS_DELETED,
                )
                .order_by(CollectionArtwork.position.asc())
            ).scalars()
            for position, artwork_id in enumerate(rows):
                self.session.add(
                    CollectionArtwork(
                        collection_id=duplicate.id,
                        artwork_id=artwork_id,
                        position=position,
                        added_at=now,
                    )
                )
        logger.info("Copied collection %s to %s", collection_id, duplicate.id)
        return duplicate

    # ------------------------------------------------------------------
    # 作品
    # ------------------------------------------------------------------

    def create_artwork(self, owner_id: int, metadata: ArtworkPatch, image_key: str) -> Artwork:
        """作品を登録する。有効な作品数が上限に達している場合は登録しない。"""

        if metadata.title is UNSET or not metadata.title:
            raise BadRequestError("タイトルを入力してください。")

        with atomic(self.session, label="create_artwork"):
            owner = self._lock_owner(owner_id)
            count = self.session.execute(
                select(func.count(Artwork.id)).where(
                    Artwork.user_id == owner_id,
                    Artwork.status == STATUS_ACTIVE,
                )
            ).scalar_one()
            if count >= owner.artwork_limit:
                raise QuotaExceededError(f"作品は最大{owner.artwork_limit}件まで登録できます。")

            now = datetime.utcnow()
            artwork = Artwork(
                id=new_id(),
                user_id=owner_id,
                slug=self.artwork_slugs.allocate(owner_id, metadata.title),
                image_key=image_key,
                category="other",
                is_public=True,
                is_featured=False,
                status=STATUS_ACTIVE,
                created_at=now,
                updated_at=now,
            )
            apply_patch(artwork, metadata)
            if artwork.category is None:
                artwork.category = "other"
            if artwork.is_public is None:
                artwork.is_public = True
            self.session.add(artwork)
        logger.info("Created artwork %s for user %s", artwork.id, owner_id)
        return artwork

    def get_artwork(
        self, viewer_id: Optional[int], artwork_id: str, *, include_collections: bool = False
    ) -> ArtworkDetail:
        artwork = self.session.get(Artwork, artwork_id)
        if artwork is None or not artwork_visible(artwork, viewer_id):
            raise NotFoundError("作品が見つかりません。")
        if not include_collections:
            return ArtworkDetail(artwork=artwork)

        stmt = (
            select(Collection, CollectionArtwork.position)
            .join(CollectionArtwork, CollectionArtwork.collection_id == Collection.id)
            .join(Gallery, Gallery.id == Collection.gallery_id)
            .where(CollectionArtwork.artwork_id == artwork.id)
            .order_by(Collection.name.asc())
        )
        if artwork.user_id != viewer_id:
            stmt = stmt.where(Collection.status == STATUS_ACTIVE, Gallery.status == STATUS_ACTIVE)
        collections = [(collection, position) for collection, position in self.session.execute(stmt).all()]
        return ArtworkDetail(artwork=artwork, collections=collections)

    def list_artworks(
        self,
        owner_id: int,
        *,
        status: Optional[str] = None,
        category: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        """自分の作品を新しい順に返す。status 未指定時は削除済みを除く。"""

        stmt = select(Artwork).where(Artwork.user_id == owner_id)
        if status:
            stmt = stmt.where(Artwork.status == status)
        else:
            stmt = stmt.where(Artwork.status != STATUS_DELETED)
        if category:
            stmt = stmt.where(Artwork.category == category)
        stmt = stmt.order_by(Artwork.created_at.desc(), Artwork.id)
        return self._paginate(stmt, page, page_size)

    def update_artwork(self, actor_id: int, artwork_id: str, patch: ArtworkPatch) -> Artwork:
        with atomic(self.session, label="update_artwork"):
            artwork = self._load_own_artwork(actor_id, artwork_id)
            self._apply(artwork, patch, self.artwork_slugs, artwork.user_id, "title")
        return artwork

    def delete_artwork(self, actor_id: int, artwork_id: str) -> list[str]:
        """作品を論理削除し、すべてのコレクションから外す。影響したコレクションIDを返す。"""

        with atomic(self.session, label="delete_artwork"):
            artwork = self._load_own_artwork(actor_id, artwork_id)
            artwork.status = STATUS_DELETED
            artwork.updated_at = datetime.utcnow()
            affected = self.memberships.detach_artwork(artwork.id)
        logger.info("Soft-deleted artwork %s (detached from %d collections)", artwork_id, len(affected))
        return affected

    # ------------------------------------------------------------------
    # 内部処理
    # ------------------------------------------------------------------

    def _load_own_artwork(self, actor_id: int, artwork_id: str) -> Artwork:
        artwork = self.session.get(Artwork, artwork_id)
        if artwork is None or not artwork_visible(artwork, actor_id):
            raise NotFoundError("作品が見つかりません。")
        if artwork.user_id != actor_id:
            raise ForbiddenError("この作品を変更する権限がありません。")
        return artwork

    def _lock_owner(self, owner_id: int) -> User:
        owner = self.session.execute(
            select(User).where(User.id == owner_id).with_for_update()
        ).scalar_one_or_none()
        if owner is None:
            raise NotFoundError("ユーザーが見つかりません。")
        return owner

    def _check_collection_quota(self, owner_id: int) -> None:
        count = self.session.execute(
            select(func.count(Collection.id))
            .join(Gallery, Gallery.id == Collection.gallery_id)
            .where(Gallery.user_id == owner_id, Collection.status != STATUS_DELETED)
        ).scalar_one()
        if count >= self.limits.collection_limit:
            raise QuotaExceededError(
                f"コレクションは最大{self.limits.collection_limit}件まで作成できます。"
            )

    def _check_theme(self, theme_id: Optional[str]) -> None:
        if not theme_id:
            return
        if self.session.get(Theme, theme_id) is None:
            raise BadRequestError("指定されたテーマが見つかりません。")

    def _apply(
        self,
        obj: Any,
        patch: Any,
        slugs: SlugAllocator,
        scope_id: Any,
        name_column: str,
    ) -> None:
        if patch.is_empty():
            raise BadRequestError("更新する項目がありません。")
        if patch.has("theme_id"):
            self._check_theme(patch.theme_id)
        if patch.has(name_column):
            obj.slug = slugs.allocate(scope_id, getattr(patch, name_column), exclude_id=obj.id)
        apply_patch(obj, patch)
        obj.updated_at = datetime.utcnow()

    def _artwork_counts(self, collection_ids: list[str]) -> dict[str, int]:
        if not collection_ids:
            return {}
        return dict(
            self.session.execute(
                select(CollectionArtwork.collection_id, func.count(CollectionArtwork.artwork_id))
                .where(CollectionArtwork.collection_id.in_(collection_ids))
                .group_by(CollectionArtwork.collection_id)
            ).all()
        )

    def _paginate(self, stmt: Select, page: int, page_size: int) -> Page:
        total = self.session.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
        items = list(self.session.execute(stmt.limit(page_size).offset((page - 1) * page_size)).scalars())
        return Page(items=items, total=total, page=page, page_size=page_size)
