from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, request
from flask_login import current_user, login_required

from models import RESOURCE_STATUSES, Artwork
from services.errors import BadRequestError
from services.mappings import ARTWORK_FIELDS, COLLECTION_FIELDS, ArtworkPatch
from services.validation import ARTWORK_CATEGORIES, validate_artwork
from views.common import (
    extract_payload,
    hierarchy_store,
    json_response,
    page_args,
    pagination,
    viewer_id,
)


artworks_bp = Blueprint("artworks", __name__, url_prefix="/api/artworks")


def _serialize_artwork(artwork: Artwork) -> dict[str, Any]:
    payload = ARTWORK_FIELDS.serialize(artwork)
    payload["tags"] = payload["tags"] or []
    return payload


@artworks_bp.post("")
@login_required
def create_artwork():
    data = extract_payload()
    error = validate_artwork(data)
    if error:
        raise BadRequestError(error)

    metadata = ArtworkPatch.from_payload(ARTWORK_FIELDS, {**data, "title": data["title"].strip()})
    artwork = hierarchy_store().create_artwork(current_user.id, metadata, data["imageKey"].strip())
    return json_response({"artwork": _serialize_artwork(artwork)}, 201)


@artworks_bp.get("")
@login_required
def list_artworks():
    status = request.args.get("status") or None
    if status and status not in RESOURCE_STATUSES:
        raise BadRequestError("status の指定が正しくありません。")
    category = request.args.get("category") or None
    if category and category not in ARTWORK_CATEGORIES:
        raise BadRequestError("category の指定が正しくありません。")
    page, page_size = page_args()

    result = hierarchy_store().list_artworks(
        current_user.id,
        status=status,
        category=category,
        page=page,
        page_size=page_size,
    )
    return json_response(
        {
            "artworks": [_serialize_artwork(artwork) for artwork in result.items],
            "pagination": pagination(result),
        }
    )


@artworks_bp.get("/<artwork_id>")
def get_artwork(artwork_id: str):
    include = {part.strip() for part in (request.args.get("include") or "").split(",") if part.strip()}
    detail = hierarchy_store().get_artwork(
        viewer_id(),
        artwork_id,
        include_collections="collections" in include,
    )
    payload = _serialize_artwork(detail.artwork)
    if detail.collections is not None:
        payload["collections"] = [
            {**COLLECTION_FIELDS.serialize(collection), "position": position}
            for collection, position in detail.collections
        ]
    return json_response({"artwork": payload})


@artworks_bp.patch("/<artwork_id>")
@login_required
def update_artwork(artwork_id: str):
    data = extract_payload()
    error = validate_artwork(data, partial=True)
    if error:
        raise BadRequestError(error)

    patch = ArtworkPatch.from_payload(ARTWORK_FIELDS, data)
    artwork = hierarchy_store().update_artwork(current_user.id, artwork_id, patch)
    return json_response({"artwork": _serialize_artwork(artwork)})


@artworks_bp.delete("/<artwork_id>")
@login_required
def delete_artwork(artwork_id: str):
    affected = hierarchy_store().delete_artwork(current_user.id, artwork_id)
    current_app.logger.info("作品 %s を削除しました。", artwork_id)
    return json_response({"ok": True, "removedFromCollections": affected})
