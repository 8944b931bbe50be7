from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app
from flask_login import current_user, login_required

from extensions import db
from models import CollectionArtwork
from services.errors import BadRequestError
from services.hierarchy import CollectionDetail, CollectionSummary
from services.mappings import ARTWORK_FIELDS, COLLECTION_FIELDS, MEMBERSHIP_FIELDS, CollectionPatch
from services.membership import MembershipOrderer
from services.validation import validate_collection, validate_reorder
from views.common import (
    extract_payload,
    hierarchy_store,
    json_response,
    page_args,
    pagination,
    viewer_id,
)


collections_bp = Blueprint("collections", __name__, url_prefix="/api")


def _serialize_summary(summary: CollectionSummary) -> dict[str, Any]:
    payload = COLLECTION_FIELDS.serialize(summary.collection)
    payload["artworkCount"] = summary.artwork_count
    return payload


def _serialize_detail(detail: CollectionDetail) -> dict[str, Any]:
    payload = COLLECTION_FIELDS.serialize(detail.collection)
    payload["galleryName"] = detail.gallery.name
    payload["gallerySlug"] = detail.gallery.slug
    artworks = []
    for membership, artwork in detail.artworks:
        item = ARTWORK_FIELDS.serialize(artwork)
        item["tags"] = item["tags"] or []
        item["position"] = membership.position
        item["addedAt"] = membership.added_at.isoformat() if membership.added_at else ""
        artworks.append(item)
    payload["artworks"] = artworks
    return payload


def _serialize_membership(membership: CollectionArtwork) -> dict[str, Any]:
    return MEMBERSHIP_FIELDS.serialize(membership)


@collections_bp.post("/galleries/<gallery_id>/collections")
@login_required
def create_collection(gallery_id: str):
    data = extract_payload()
    error = validate_collection(data)
    if error:
        raise BadRequestError(error)

    collection = hierarchy_store().create_collection(
        current_user.id,
        gallery_id,
        data["name"].strip(),
        description=data.get("description"),
    )
    return json_response({"collection": COLLECTION_FIELDS.serialize(collection)}, 201)


@collections_bp.get("/galleries/<gallery_id>/collections")
def list_collections(gallery_id: str):
    page, page_size = page_args()
    result = hierarchy_store().list_collections(viewer_id(), gallery_id, page=page, page_size=page_size)
    return json_response(
        {
            "collections": [_serialize_summary(summary) for summary in result.items],
            "pagination": pagination(result),
        }
    )


@collections_bp.get("/collections/<collection_id>")
def get_collection(collection_id: str):
    detail = hierarchy_store().get_collection(viewer_id(), collection_id)
    return json_response({"collection": _serialize_detail(detail)})


@collections_bp.patch("/collections/<collection_id>")
@login_required
def update_collection(collection_id: str):
    data = extract_payload()
    error = validate_collection(data, partial=True)
    if error:
        raise BadRequestError(error)

    patch = CollectionPatch.from_payload(COLLECTION_FIELDS, data)
    collection = hierarchy_store().update_collection(current_user.id, collection_id, patch)
    return json_response({"collection": COLLECTION_FIELDS.serialize(collection)})


@collections_bp.delete("/collections/<collection_id>")
@login_required
def delete_collection(collection_id: str):
    hierarchy_store().delete_collection(current_user.id, collection_id)
    current_app.logger.info("コレクション %s を削除しました。", collection_id)
    return json_response({"ok": True})


@collections_bp.post("/collections/<collection_id>/copy")
@login_required
def copy_collection(collection_id: str):
    data = extract_payload()
    target_gallery_id = data.get("targetGalleryId")
    if target_gallery_id is not None and not isinstance(target_gallery_id, str):
        raise BadRequestError("targetGalleryId は文字列で指定してください。")
    name = data.get("name")
    if name is not None:
        error = validate_collection({"name": name})
        if error:
            raise BadRequestError(error)
        name = name.strip()

    collection = hierarchy_store().copy_collection(
        current_user.id,
        collection_id,
        target_gallery_id=target_gallery_id or None,
        name=name,
    )
    return json_response({"collection": COLLECTION_FIELDS.serialize(collection)}, 201)


@collections_bp.post("/collections/<collection_id>/artworks")
@login_required
def add_artwork(collection_id: str):
    data = extract_payload()
    artwork_id = data.get("artworkId")
    if not isinstance(artwork_id, str) or not artwork_id:
        raise BadRequestError("artworkId を指定してください。")

    membership = MembershipOrderer(db.session).add(current_user.id, collection_id, artwork_id)
    return json_response({"membership": _serialize_membership(membership)}, 201)


@collections_bp.delete("/collections/<collection_id>/artworks/<artwork_id>")
@login_required
def remove_artwork(collection_id: str, artwork_id: str):
    MembershipOrderer(db.session).remove(current_user.id, collection_id, artwork_id)
    return json_response({"ok": True})


@collections_bp.patch("/collections/<collection_id>/artworks/reorder")
@login_required
def reorder_artworks(collection_id: str):
    data = extract_payload()
    error = validate_reorder(data)
    if error:
        raise BadRequestError(error)

    memberships = MembershipOrderer(db.session).reorder(current_user.id, collection_id, data["artworkIds"])
    return json_response({"memberships": [_serialize_membership(membership) for membership in memberships]})
