from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from models import User
from services.batch import atomic
from services.errors import BadRequestError
from services.hierarchy import HierarchyStore

logger = logging.getLogger(__name__)


def provision_user(
    session: Session,
    *,
    username: str,
    email: str,
    password: str,
    role: str = "user",
    artwork_limit: Optional[int] = None,
) -> User:
    """ユーザーを作成し、デフォルトギャラリー一式を同じバッチで登録する。"""

    existing = session.execute(
        select(User.id).where(or_(User.username == username, User.email == email)).limit(1)
    ).first()
    if existing is not None:
        raise BadRequestError("同じユーザー名またはメールアドレスが既に存在します。")

    with atomic(session, label="provision_user"):
        user = User(username=username, email=email, role=role, is_active=True)
        if artwork_limit is not None:
            user.artwork_limit = artwork_limit
        user.set_password(password)
        session.add(user)
        session.flush()
        HierarchyStore(session).bootstrap_default_gallery(user.id)
    logger.info("Provisioned user %s with default gallery", user.id)
    return user
