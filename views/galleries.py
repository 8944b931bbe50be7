from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, request
from flask_login import current_user, login_required

from extensions import db
from models import RESOURCE_STATUSES, ROLE_ADMIN, Gallery
from services.errors import BadRequestError
from services.hierarchy import CollectionSummary
from services.mappings import COLLECTION_FIELDS, GALLERY_FIELDS, ROLE_FIELDS, THEME_FIELDS, GalleryPatch
from services.roles import RoleRegistry
from services.validation import validate_gallery
from views.common import (
    extract_payload,
    hierarchy_store,
    json_response,
    page_args,
    pagination,
    viewer_id,
)


galleries_bp = Blueprint("galleries", __name__, url_prefix="/api/galleries")


def _serialize_gallery(gallery: Gallery) -> dict[str, Any]:
    return GALLERY_FIELDS.serialize(gallery)


def _serialize_collection_summary(summary: CollectionSummary) -> dict[str, Any]:
    payload = COLLECTION_FIELDS.serialize(summary.collection)
    payload["artworkCount"] = summary.artwork_count
    return payload


def _serialize_theme(gallery: Gallery) -> dict[str, Any] | None:
    if gallery.theme is None:
        return None
    theme = THEME_FIELDS.serialize(gallery.theme)
    return {"id": theme["id"], "name": theme["name"], "styles": theme["styles"] or {}}


@galleries_bp.post("")
@login_required
def create_gallery():
    data = extract_payload()
    error = validate_gallery(data)
    if error:
        raise BadRequestError(error)

    gallery = hierarchy_store().create_gallery(
        current_user.id,
        data["name"].strip(),
        description=data.get("description"),
        welcome_message=data.get("welcomeMessage"),
    )
    return json_response({"gallery": _serialize_gallery(gallery)}, 201)


@galleries_bp.get("")
@login_required
def list_galleries():
    status = request.args.get("status") or None
    if status and status not in RESOURCE_STATUSES:
        raise BadRequestError("status の指定が正しくありません。")
    page, page_size = page_args()

    result = hierarchy_store().list_galleries(current_user.id, status=status, page=page, page_size=page_size)
    galleries = []
    for gallery, collection_count in result.items:
        payload = _serialize_gallery(gallery)
        payload["collectionCount"] = collection_count
        galleries.append(payload)
    return json_response({"galleries": galleries, "pagination": pagination(result)})


@galleries_bp.get("/<gallery_id>")
def get_gallery(gallery_id: str):
    detail = hierarchy_store().get_gallery(viewer_id(), gallery_id)
    payload = _serialize_gallery(detail.gallery)
    payload["collections"] = [_serialize_collection_summary(summary) for summary in detail.collections]
    payload["theme"] = _serialize_theme(detail.gallery)
    return json_response({"gallery": payload})


@galleries_bp.patch("/<gallery_id>")
@login_required
def update_gallery(gallery_id: str):
    data = extract_payload()
    error = validate_gallery(data, partial=True)
    if error:
        raise BadRequestError(error)

    patch = GalleryPatch.from_payload(GALLERY_FIELDS, data)
    gallery = hierarchy_store().update_gallery(current_user.id, gallery_id, patch)
    return json_response({"gallery": _serialize_gallery(gallery)})


@galleries_bp.get("/<gallery_id>/delete-info")
@login_required
def gallery_delete_info(gallery_id: str):
    return json_response(hierarchy_store().gallery_delete_info(current_user.id, gallery_id))


@galleries_bp.delete("/<gallery_id>")
@login_required
def delete_gallery(gallery_id: str):
    hierarchy_store().delete_gallery(current_user.id, gallery_id)
    current_app.logger.info("ギャラリー %s を削除しました。", gallery_id)
    return json_response({"ok": True})


@galleries_bp.get("/<gallery_id>/roles")
@login_required
def list_roles(gallery_id: str):
    rows = RoleRegistry(db.session).list_roles(gallery_id, current_user.id)
    roles = []
    for role, user in rows:
        payload = ROLE_FIELDS.serialize(role)
        payload["username"] = user.username
        payload["email"] = user.email
        roles.append(payload)
    return json_response({"roles": roles})


@galleries_bp.post("/<gallery_id>/roles")
@login_required
def grant_role(gallery_id: str):
    data = extract_payload()
    username = (data.get("username") or "").strip() if isinstance(data.get("username"), str) else ""
    role = data.get("role", ROLE_ADMIN)
    if not username:
        raise BadRequestError("username を指定してください。")
    if role != ROLE_ADMIN:
        raise BadRequestError("role には admin のみ指定できます。")

    granted = RoleRegistry(db.session).grant_admin(gallery_id, current_user.id, username)
    return json_response({"role": ROLE_FIELDS.serialize(granted)}, 201)


@galleries_bp.delete("/<gallery_id>/roles/<int:user_id>")
@login_required
def revoke_role(gallery_id: str, user_id: int):
    RoleRegistry(db.session).revoke(gallery_id, current_user.id, user_id)
    return json_response({"ok": True})
