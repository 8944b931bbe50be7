"""リクエストボディの入力検証。

各関数は最初に見つかったエラーメッセージを返し、問題がなければ None を返す。
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from models import RESOURCE_STATUSES
from services.slugs import normalize_slug

NAME_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
MATERIALS_MAX_LENGTH = 500
DIMENSIONS_MAX_LENGTH = 200
URL_MAX_LENGTH = 1024
TAGS_MAX_COUNT = 20
TAG_MAX_LENGTH = 50

ARTWORK_CATEGORIES = (
    "painting",
    "sculpture",
    "photography",
    "digital",
    "drawing",
    "printmaking",
    "mixed-media",
    "other",
)

_CREATED_DATE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])(-(0[1-9]|[12]\d|3[01]))?$")

_READ_ONLY_FIELDS = ("id", "userId", "galleryId", "slug", "isDefault", "imageKey", "createdAt", "updatedAt")


def _check_name(value: Any, label: str, *, required: bool) -> Optional[str]:
    if value is None or value == "":
        return f"{label}を入力してください。" if required else None
    if not isinstance(value, str):
        return f"{label}は文字列で指定してください。"
    if not value.strip():
        return f"{label}を入力してください。"
    if len(value) > NAME_MAX_LENGTH:
        return f"{label}は{NAME_MAX_LENGTH}文字以内にしてください。"
    if not normalize_slug(value):
        return f"{label}には英数字を1文字以上含めてください。"
    return None


def _check_text(value: Any, label: str, max_length: int) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        return f"{label}は文字列で指定してください。"
    if len(value) > max_length:
        return f"{label}は{max_length}文字以内にしてください。"
    return None


def _check_status(value: Any, *, allow_deleted: bool = False) -> Optional[str]:
    allowed = RESOURCE_STATUSES if allow_deleted else tuple(s for s in RESOURCE_STATUSES if s != "deleted")
    if value not in allowed:
        return "status には " + ", ".join(allowed) + " のいずれかを指定してください。"
    return None


def _check_read_only(payload: Mapping[str, Any]) -> Optional[str]:
    for name in _READ_ONLY_FIELDS:
        if name in payload:
            return f"{name} は変更できません。"
    return None


def validate_gallery(payload: Mapping[str, Any], *, partial: bool = False) -> Optional[str]:
    """ギャラリーの作成・更新内容を検証する。"""

    if partial:
        error = _check_read_only(payload)
        if error:
            return error
        if "name" in payload:
            error = _check_name(payload["name"], "ギャラリー名", required=True)
            if error:
                return error
        if "status" in payload:
            error = _check_status(payload["status"])
            if error:
                return error
        if "themeId" in payload and payload["themeId"] is not None and not isinstance(payload["themeId"], str):
            return "themeId は文字列で指定してください。"
    else:
        error = _check_name(payload.get("name"), "ギャラリー名", required=True)
        if error:
            return error

    return _check_text(payload.get("description"), "説明", DESCRIPTION_MAX_LENGTH) or _check_text(
        payload.get("welcomeMessage"), "ウェルカムメッセージ", DESCRIPTION_MAX_LENGTH
    )


def validate_collection(payload: Mapping[str, Any], *, partial: bool = False) -> Optional[str]:
    """コレクションの作成・更新内容を検証する。"""

    if partial:
        error = _check_read_only(payload)
        if error:
            return error
        if "name" in payload:
            error = _check_name(payload["name"], "コレクション名", required=True)
            if error:
                return error
        if "status" in payload:
            error = _check_status(payload["status"])
            if error:
                return error
        if "themeId" in payload and payload["themeId"] is not None and not isinstance(payload["themeId"], str):
            return "themeId は文字列で指定してください。"
    else:
        error = _check_name(payload.get("name"), "コレクション名", required=True)
        if error:
            return error

    return _check_text(payload.get("description"), "説明", DESCRIPTION_MAX_LENGTH) or _check_text(
        payload.get("heroImageUrl"), "ヒーロー画像URL", URL_MAX_LENGTH
    )


def validate_artwork(payload: Mapping[str, Any], *, partial: bool = False) -> Optional[str]:
    """作品の作成・更新内容を検証する。"""

    if partial:
        error = _check_read_only(payload)
        if error:
            return error
        if "title" in payload:
            error = _check_name(payload["title"], "タイトル", required=True)
            if error:
                return error
    else:
        error = _check_name(payload.get("title"), "タイトル", required=True)
        if error:
            return error
        image_key = payload.get("imageKey")
        if not isinstance(image_key, str) or not image_key.strip():
            return "imageKey を指定してください。"
        if len(image_key) > URL_MAX_LENGTH:
            return f"imageKey は{URL_MAX_LENGTH}文字以内にしてください。"

    for name, label, max_length in (
        ("description", "説明", DESCRIPTION_MAX_LENGTH),
        ("materials", "素材", MATERIALS_MAX_LENGTH),
        ("dimensions", "サイズ", DIMENSIONS_MAX_LENGTH),
    ):
        error = _check_text(payload.get(name), label, max_length)
        if error:
            return error

    category = payload.get("category")
    if category is not None and category not in ARTWORK_CATEGORIES:
        return "category には " + ", ".join(ARTWORK_CATEGORIES) + " のいずれかを指定してください。"

    created_date = payload.get("createdDate")
    if created_date not in (None, ""):
        if not isinstance(created_date, str) or not _CREATED_DATE.match(created_date):
            return "createdDate は YYYY-MM または YYYY-MM-DD 形式で指定してください。"

    tags = payload.get("tags")
    if tags is not None:
        if not isinstance(tags, list):
            return "tags は配列で指定してください。"
        if len(tags) > TAGS_MAX_COUNT:
            return f"tags は{TAGS_MAX_COUNT}件以内にしてください。"
        for tag in tags:
            if not isinstance(tag, str) or not tag.strip() or len(tag) > TAG_MAX_LENGTH:
                return f"tags の各要素は{TAG_MAX_LENGTH}文字以内の文字列で指定してください。"

    if "isPublic" in payload and not isinstance(payload["isPublic"], bool):
        return "isPublic は true/false で指定してください。"
    if "status" in payload:
        return "status は変更できません。削除は DELETE を使用してください。"
    return None


def validate_reorder(payload: Mapping[str, Any]) -> Optional[str]:
    """並び替えリクエストの形式を検証する。内容の整合性は MembershipOrderer が確認する。"""

    artwork_ids = payload.get("artworkIds")
    if not isinstance(artwork_ids, list):
        return "artworkIds は配列で指定してください。"
    if any(not isinstance(artwork_id, str) for artwork_id in artwork_ids):
        return "artworkIds の各要素は文字列で指定してください。"
    return None
