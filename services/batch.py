from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from services.errors import BatchError, HierarchyError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(session: Session, *, label: str) -> Iterator[Session]:
    """ブロック内の書き込みを1つのトランザクションとしてコミットする。

    例外が発生した場合はすべてロールバックし、DB由来の失敗は
    詳細を伏せた BatchError として呼び出し元へ伝える。再試行は行わない。
    """

    try:
        yield session
        session.commit()
    except HierarchyError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Write batch failed: %s", label)
        raise BatchError("データの更新に失敗しました。") from exc
