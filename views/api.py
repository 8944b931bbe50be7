from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import Blueprint, current_app, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from extensions import db
from models import Gallery, User
from services.accounts import provision_user
from services.errors import HierarchyError
from views.common import error_response, extract_payload, json_response, parse_bool


api_bp = Blueprint("api", __name__, url_prefix="/api")


def _serialize_user(user: User) -> dict[str, Any]:
    default_gallery = Gallery.query.filter_by(user_id=user.id, is_default=True).first()
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "is_initial_user": user.is_initial_user,
        "is_admin": user.is_admin,
        "is_active": user.is_active,
        "artwork_limit": user.artwork_limit,
        "default_gallery_id": default_gallery.id if default_gallery else None,
    }


def _serialize_admin_user(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "is_active": user.is_active,
        "is_initial_user": user.is_initial_user,
        "artwork_limit": user.artwork_limit,
        "created_at": user.created_at.isoformat() if user.created_at else "",
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else "",
    }


def _require_admin():
    if not current_user.is_authenticated:
        return error_response("認証が必要です。", 401)
    if not current_user.is_admin:
        return error_response("管理者のみが利用できます。", 403)
    return None


@api_bp.app_errorhandler(HierarchyError)
def handle_hierarchy_error(error: HierarchyError):
    return error_response(error.message, error.status, error.error_code)


@api_bp.app_errorhandler(Exception)
def handle_unexpected_error(error: Exception):
    if isinstance(error, HTTPException):
        if request.path.startswith("/api/"):
            return error_response(error.description or error.name, error.code or 500)
        return error
    current_app.logger.exception("Unhandled error on %s %s: %s", request.method, request.path, error)
    db.session.rollback()
    return error_response(
        "サーバー内部でエラーが発生しました。管理者に連絡してください。",
        500,
        "internal_server_error_contact_admin",
    )


@api_bp.get("/health")
def health():
    db_ok = True
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        db_ok = False
        current_app.logger.error("DBヘルスチェックに失敗しました: %s", exc)
    status = "ok" if db_ok else "error"
    return json_response({"status": status, "timestamp": datetime.utcnow().isoformat(), "db_ok": db_ok})


@api_bp.get("/csrf")
def csrf_token():
    return json_response({"csrf_token": generate_csrf()})


@api_bp.get("/me")
def me():
    if not current_user.is_authenticated:
        return json_response({"authenticated": False})
    return json_response({"authenticated": True, "user": _serialize_user(current_user)})


@api_bp.post("/auth/login")
def login():
    if current_user.is_authenticated:
        return json_response({"user": _serialize_user(current_user)})

    data = extract_payload()
    if not data:
        data = request.form.to_dict()

    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    if not username or not password:
        return error_response("ユーザー名とパスワードを入力してください。", 400)

    user = User.query.filter_by(username=username).first()
    if not user or not user.check_password(password):
        return error_response("ユーザー名またはパスワードが違います。", 401)
    if not user.is_active:
        return error_response("このアカウントは無効化されています。", 403)

    login_user(user)
    user.last_login_at = datetime.utcnow()
    db.session.add(user)
    db.session.commit()
    return json_response({"user": _serialize_user(user)})


@api_bp.post("/auth/logout")
@login_required
def logout():
    logout_user()
    return json_response({"ok": True})


@api_bp.patch("/users/me/password")
@login_required
def update_my_password():
    data = extract_payload()
    if not data:
        data = request.form.to_dict()

    current_password = data.get("current_password") or ""
    new_password = data.get("new_password") or ""
    if not current_password or not new_password:
        return error_response("現在のパスワードと新しいパスワードを入力してください。", 400)
    if not current_user.check_password(current_password):
        return error_response("現在のパスワードが正しくありません。", 400)
    if current_password == new_password:
        return error_response("新しいパスワードは現在のパスワードと異なる内容を指定してください。", 400)

    current_user.set_password(new_password)
    db.session.add(current_user)
    db.session.commit()
    return json_response({"ok": True})


@api_bp.get("/admin/users")
@login_required
def admin_users():
    error = _require_admin()
    if error:
        return error
    users = User.query.order_by(User.created_at.asc()).all()
    return json_response({"users": [_serialize_admin_user(user) for user in users]})


@api_bp.post("/admin/users")
@login_required
def admin_create_user():
    error = _require_admin()
    if error:
        return error

    data = extract_payload()
    if not data:
        data = request.form.to_dict()

    username = (data.get("username") or "").strip()
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""

    if not username or not email or not password:
        return error_response("すべての項目を入力してください。", 400)
    if len(username) > 80:
        return error_response("ユーザー名は80文字以内にしてください。", 400)
    if len(email) > 255:
        return error_response("メールアドレスは255文字以内にしてください。", 400)

    artwork_limit = data.get("artwork_limit", current_app.config.get("DEFAULT_ARTWORK_LIMIT"))
    if isinstance(artwork_limit, bool) or not isinstance(artwork_limit, int) or artwork_limit < 0:
        return error_response("artwork_limit は0以上の整数で指定してください。", 400)

    user = provision_user(
        db.session,
        username=username,
        email=email,
        password=password,
        artwork_limit=artwork_limit,
    )
    current_app.logger.info("管理者 %s がユーザー %s を作成しました。", current_user.id, user.id)
    return json_response({"user": _serialize_admin_user(user)}, 201)


@api_bp.patch("/admin/users/<int:user_id>/status")
@login_required
def admin_update_user_status(user_id: int):
    error = _require_admin()
    if error:
        return error

    data = extract_payload()
    is_active = parse_bool(data.get("is_active"))
    if is_active is None:
        return error_response("is_active を true/false で指定してください。", 400)

    user = User.query.filter_by(id=user_id).first()
    if not user:
        return error_response("対象ユーザーが見つかりません。", 404)
    if user.id == current_user.id and not is_active:
        return error_response("自分自身を無効化することはできません。", 400)

    user.is_active = is_active
    db.session.add(user)
    db.session.commit()
    return json_response({"user": _serialize_admin_user(user)})
