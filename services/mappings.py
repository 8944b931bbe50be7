"""APIのcamelCaseとDBカラムのsnake_caseの対応表、および部分更新の型。

エンティティごとの対応表はここにだけ定義し、ビュー・サービスはこの表を経由して
レスポンスの組み立てとリクエストの読み取りを行う。
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Mapping


class _Unset:
    """部分更新で「指定なし」を表す番兵。None（明示的なクリア）と区別する。"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class FieldMap:
    """1エンティティ分の camelCase <-> snake_case 対応表。"""

    def __init__(self, entity: str, pairs: Mapping[str, str]) -> None:
        self.entity = entity
        self._to_column = dict(pairs)
        self._to_api = {column: api for api, column in pairs.items()}
        if len(self._to_api) != len(self._to_column):
            raise ValueError(f"{entity}: column names must be unique")

    @property
    def api_names(self) -> tuple[str, ...]:
        return tuple(self._to_column)

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(self._to_api)

    def to_column(self, api_name: str) -> str:
        return self._to_column[api_name]

    def to_api(self, column: str) -> str:
        return self._to_api[column]

    def serialize(self, obj: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for api_name, column in self._to_column.items():
            value = getattr(obj, column)
            if isinstance(value, datetime):
                value = value.isoformat()
            payload[api_name] = value
        return payload


GALLERY_FIELDS = FieldMap(
    "gallery",
    {
        "id": "id",
        "userId": "user_id",
        "slug": "slug",
        "name": "name",
        "description": "description",
        "welcomeMessage": "welcome_message",
        "themeId": "theme_id",
        "isDefault": "is_default",
        "status": "status",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
)

COLLECTION_FIELDS = FieldMap(
    "collection",
    {
        "id": "id",
        "galleryId": "gallery_id",
        "slug": "slug",
        "name": "name",
        "description": "description",
        "heroImageUrl": "hero_image_url",
        "themeId": "theme_id",
        "isDefault": "is_default",
        "status": "status",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
)

ARTWORK_FIELDS = FieldMap(
    "artwork",
    {
        "id": "id",
        "userId": "user_id",
        "slug": "slug",
        "title": "title",
        "description": "description",
        "materials": "materials",
        "dimensions": "dimensions",
        "createdDate": "created_date",
        "category": "category",
        "tags": "tags",
        "imageKey": "image_key",
        "isPublic": "is_public",
        "isFeatured": "is_featured",
        "status": "status",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
)

MEMBERSHIP_FIELDS = FieldMap(
    "membership",
    {
        "collectionId": "collection_id",
        "artworkId": "artwork_id",
        "position": "position",
        "addedAt": "added_at",
    },
)

ROLE_FIELDS = FieldMap(
    "gallery_role",
    {
        "galleryId": "gallery_id",
        "userId": "user_id",
        "role": "role",
        "grantedAt": "granted_at",
        "grantedBy": "granted_by",
    },
)

THEME_FIELDS = FieldMap(
    "theme",
    {
        "id": "id",
        "name": "name",
        "description": "description",
        "createdBy": "created_by",
        "isSystem": "is_system",
        "isPublic": "is_public",
        "styles": "styles",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
)


@dataclass(frozen=True)
class _Patch:
    """部分更新の共通処理。フィールド名はそのまま更新対象のカラム名になる。"""

    def provided(self) -> dict[str, Any]:
        return {
            field.name: getattr(self, field.name)
            for field in fields(self)
            if getattr(self, field.name) is not UNSET
        }

    def has(self, column: str) -> bool:
        return getattr(self, column, UNSET) is not UNSET

    def is_empty(self) -> bool:
        return not self.provided()

    @classmethod
    def from_payload(cls, field_map: FieldMap, payload: Mapping[str, Any]):
        """リクエストボディのうち、このパッチで更新できる項目だけを取り出す。"""

        values = {}
        for field in fields(cls):
            api_name = field_map.to_api(field.name)
            if api_name in payload:
                values[field.name] = payload[api_name]
        return cls(**values)


@dataclass(frozen=True)
class GalleryPatch(_Patch):
    name: Any = UNSET
    description: Any = UNSET
    welcome_message: Any = UNSET
    theme_id: Any = UNSET
    status: Any = UNSET


@dataclass(frozen=True)
class CollectionPatch(_Patch):
    name: Any = UNSET
    description: Any = UNSET
    hero_image_url: Any = UNSET
    theme_id: Any = UNSET
    status: Any = UNSET


@dataclass(frozen=True)
class ArtworkPatch(_Patch):
    title: Any = UNSET
    description: Any = UNSET
    materials: Any = UNSET
    dimensions: Any = UNSET
    created_date: Any = UNSET
    category: Any = UNSET
    tags: Any = UNSET
    is_public: Any = UNSET


def apply_patch(obj: Any, patch: _Patch) -> list[str]:
    """指定された項目だけを書き込み、更新したカラム名を返す。

    空文字は NULL として保存する。指定のない項目には触れない。
    """

    changed = []
    for column, value in patch.provided().items():
        if value == "":
            value = None
        setattr(obj, column, value)
        changed.append(column)
    return changed
