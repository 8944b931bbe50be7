from __future__ import annotations

from typing import Any, Optional

from flask import current_app, jsonify, request
from flask_login import current_user

from extensions import db
from services.errors import BadRequestError
from services.hierarchy import HierarchyStore, Limits, Page


def json_response(payload: dict[str, Any], status: int = 200):
    return jsonify(payload), status


def error_response(message: str, status: int = 400, error_code: Optional[str] = None):
    payload = {"error": message}
    if error_code:
        payload["error_code"] = error_code
    return json_response(payload, status)


def extract_payload() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return {}


def parse_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    return None


def viewer_id() -> Optional[int]:
    """未ログインの閲覧者は None として扱う。"""

    if current_user.is_authenticated:
        return current_user.id
    return None


def page_args() -> tuple[int, int]:
    """クエリ文字列の page / pageSize を検証して返す。"""

    max_size = int(current_app.config.get("PAGE_SIZE_MAX", 100))
    default_size = int(current_app.config.get("PAGE_SIZE_DEFAULT", 20))
    try:
        page = int(request.args.get("page", 1))
        page_size = int(request.args.get("pageSize", default_size))
    except ValueError:
        raise BadRequestError("page と pageSize は整数で指定してください。") from None
    if page < 1:
        raise BadRequestError("page は1以上を指定してください。")
    if page_size < 1 or page_size > max_size:
        raise BadRequestError(f"pageSize は1から{max_size}の範囲で指定してください。")
    return page, page_size


def pagination(page: Page) -> dict[str, int]:
    return {"page": page.page, "pageSize": page.page_size, "total": page.total}


def hierarchy_store() -> HierarchyStore:
    """リクエスト単位のセッションでストアを組み立てる。"""

    return HierarchyStore(db.session, Limits.from_config(current_app.config))
