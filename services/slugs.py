from __future__ import annotations

import re
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

SLUG_MAX_LENGTH = 50

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def normalize_slug(name: str) -> str:
    """表示名からURLに使えるベーススラッグを生成する。

    記号のみの名前は空文字になる。空名の拒否は入力検証側の責務。
    """

    slug = name.lower().strip()
    slug = _INVALID_CHARS.sub("", slug)
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHENS.sub("-", slug)
    return slug[:SLUG_MAX_LENGTH]


class SlugAllocator:
    """スコープ内で重複しないスラッグを割り当てる。

    `model` の `scope_column` が同じ行の中で `slug` が一意になるよう、
    `-1`, `-2`, ... を付けて空きを探す。
    """

    def __init__(self, session: Session, model, scope_column: str) -> None:
        self.session = session
        self.model = model
        self.scope_column = scope_column

    def is_taken(self, scope_id, slug: str, exclude_id: Optional[str] = None) -> bool:
        stmt = select(self.model.id).where(
            getattr(self.model, self.scope_column) == scope_id,
            self.model.slug == slug,
        )
        if exclude_id is not None:
            stmt = stmt.where(self.model.id != exclude_id)
        return self.session.execute(stmt.limit(1)).first() is not None

    def allocate(self, scope_id, desired_name: str, exclude_id: Optional[str] = None) -> str:
        base_slug = normalize_slug(desired_name)
        slug = base_slug
        counter = 1
        while self.is_taken(scope_id, slug, exclude_id):
            slug = f"{base_slug}-{counter}"
            counter += 1
        return slug
