from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models import STATUS_DELETED, Artwork, Collection, CollectionArtwork
from services.access import load_collection
from services.batch import atomic
from services.errors import BadRequestError, NotFoundError

logger = logging.getLogger(__name__)


class MembershipOrderer:
    """コレクション内の作品の並び順を管理する。

    どの操作の後でも、1つのコレクションの position は 0..n-1 の連番になる。
    変更系の操作はコレクション行をロックしてから読み書きし、1つのバッチでコミットする。
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def members(self, collection_id: str) -> list[CollectionArtwork]:
        return list(
            self.session.execute(
                select(CollectionArtwork)
                .where(CollectionArtwork.collection_id == collection_id)
                .order_by(CollectionArtwork.position.asc(), CollectionArtwork.added_at.asc())
            ).scalars()
        )

    def add(self, actor_id: int, collection_id: str, artwork_id: str) -> CollectionArtwork:
        """作品をコレクションの末尾に追加する。"""

        with atomic(self.session, label="add_membership"):
            collection, gallery = load_collection(
                self.session, collection_id, actor_id, curate=True, lock=True
            )

            artwork = self.session.get(Artwork, artwork_id)
            if artwork is None or artwork.user_id != gallery.user_id or artwork.status == STATUS_DELETED:
                raise NotFoundError("作品が見つかりません。")
            if self.session.get(CollectionArtwork, (collection_id, artwork_id)) is not None:
                raise BadRequestError("この作品は既にコレクションに含まれています。")

            max_position = self.session.execute(
                select(func.max(CollectionArtwork.position)).where(
                    CollectionArtwork.collection_id == collection_id
                )
            ).scalar()
            membership = CollectionArtwork(
                collection_id=collection_id,
                artwork_id=artwork_id,
                position=0 if max_position is None else max_position + 1,
                added_at=datetime.utcnow(),
            )
            self.session.add(membership)
            self._touch(collection)
        return membership

    def remove(self, actor_id: int, collection_id: str, artwork_id: str) -> None:
        """作品をコレクションから外し、残りを詰め直す。"""

        with atomic(self.session, label="remove_membership"):
            collection, _ = load_collection(self.session, collection_id, actor_id, curate=True, lock=True)

            membership = self.session.get(CollectionArtwork, (collection_id, artwork_id))
            if membership is None:
                raise NotFoundError("コレクション内に指定された作品が見つかりません。")
            self.session.delete(membership)
            self.session.flush()
            self.renumber(collection_id)
            self._touch(collection)

    def reorder(self, actor_id: int, collection_id: str, ordered_ids: Sequence[str]) -> list[CollectionArtwork]:
        """現在の所属作品の並べ替えとして、指定順に position を振り直す。"""

        with atomic(self.session, label="reorder_membership"):
            collection, _ = load_collection(self.session, collection_id, actor_id, curate=True, lock=True)

            current = {membership.artwork_id: membership for membership in self.members(collection_id)}
            if len(ordered_ids) != len(current):
                raise BadRequestError(
                    f"artworkIds の件数({len(ordered_ids)})がコレクション内の作品数({len(current)})と一致しません。"
                )
            seen: set[str] = set()
            for artwork_id in ordered_ids:
                if artwork_id in seen:
                    raise BadRequestError(f"artworkIds に重複した作品IDがあります: {artwork_id}")
                seen.add(artwork_id)
            for artwork_id in ordered_ids:
                if artwork_id not in current:
                    raise BadRequestError(f"コレクションに含まれていない作品IDがあります: {artwork_id}")

            for index, artwork_id in enumerate(ordered_ids):
                current[artwork_id].position = index
            self._touch(collection)
        return [current[artwork_id] for artwork_id in ordered_ids]

    def renumber(self, collection_id: str) -> None:
        """現在の並び順を保ったまま position を 0 から振り直す。コミットは呼び出し側で行う。"""

        for index, membership in enumerate(self.members(collection_id)):
            if membership.position != index:
                membership.position = index

    def detach_artwork(self, artwork_id: str) -> list[str]:
        """作品をすべてのコレクションから外し、影響したコレクションIDを返す。

        作品の論理削除バッチの中で呼び出す。コミットは呼び出し側で行う。
        """

        collection_ids = sorted(
            self.session.execute(
                select(CollectionArtwork.collection_id).where(CollectionArtwork.artwork_id == artwork_id)
            ).scalars()
        )
        collections = self._lock(collection_ids)
        for collection in collections:
            membership = self.session.get(CollectionArtwork, (collection.id, artwork_id))
            if membership is not None:
                self.session.delete(membership)
        self.session.flush()
        for collection in collections:
            self.renumber(collection.id)
            self._touch(collection)
        return collection_ids

    def _lock(self, collection_ids: Iterable[str]) -> list[Collection]:
        ids = list(collection_ids)
        if not ids:
            return []
        return list(
            self.session.execute(
                select(Collection).where(Collection.id.in_(ids)).order_by(Collection.id).with_for_update()
            ).scalars()
        )

    @staticmethod
    def _touch(collection: Collection) -> None:
        collection.updated_at = datetime.utcnow()
