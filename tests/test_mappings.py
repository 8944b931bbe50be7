from __future__ import annotations

from dataclasses import fields
from datetime import datetime
from types import SimpleNamespace

import pytest

from models import Artwork, Collection, CollectionArtwork, Gallery, GalleryRole, Theme
from services.mappings import (
    ARTWORK_FIELDS,
    COLLECTION_FIELDS,
    GALLERY_FIELDS,
    MEMBERSHIP_FIELDS,
    ROLE_FIELDS,
    THEME_FIELDS,
    UNSET,
    ArtworkPatch,
    CollectionPatch,
    GalleryPatch,
    apply_patch,
)


@pytest.mark.parametrize(
    "field_map, model",
    [
        (GALLERY_FIELDS, Gallery),
        (COLLECTION_FIELDS, Collection),
        (ARTWORK_FIELDS, Artwork),
        (MEMBERSHIP_FIELDS, CollectionArtwork),
        (ROLE_FIELDS, GalleryRole),
        (THEME_FIELDS, Theme),
    ],
)
def test_field_map_covers_every_column(field_map, model):
    assert set(field_map.columns) == set(model.__table__.columns.keys())
    for api_name in field_map.api_names:
        assert field_map.to_api(field_map.to_column(api_name)) == api_name
        assert "_" not in api_name


@pytest.mark.parametrize(
    "patch_cls, field_map, model",
    [
        (GalleryPatch, GALLERY_FIELDS, Gallery),
        (CollectionPatch, COLLECTION_FIELDS, Collection),
        (ArtworkPatch, ARTWORK_FIELDS, Artwork),
    ],
)
def test_patch_fields_are_mapped_and_exclude_protected_columns(patch_cls, field_map, model):
    names = {field.name for field in fields(patch_cls)}
    assert names <= set(field_map.columns)
    assert names <= set(model.__table__.columns.keys())
    assert not names & {"id", "user_id", "gallery_id", "slug", "is_default", "image_key", "created_at"}


def test_patch_from_payload_only_takes_known_fields():
    patch = GalleryPatch.from_payload(
        GALLERY_FIELDS,
        {"name": "New", "welcomeMessage": None, "isDefault": True, "unknown": 1},
    )
    assert patch.provided() == {"name": "New", "welcome_message": None}
    assert patch.has("name")
    assert not patch.has("description")
    assert GalleryPatch().is_empty()


def test_apply_patch_writes_only_provided_fields():
    target = SimpleNamespace(title="Old", description="Keep", materials="Ink", is_public=True)
    changed = apply_patch(target, ArtworkPatch(title="New", materials="", is_public=False))
    assert sorted(changed) == ["is_public", "materials", "title"]
    assert target.title == "New"
    assert target.description == "Keep"
    assert target.materials is None
    assert target.is_public is False


def test_unset_is_distinct_from_none():
    assert UNSET is not None
    assert not UNSET
    assert repr(UNSET) == "UNSET"
    assert CollectionPatch(description=None).provided() == {"description": None}


def test_serialize_uses_camel_case_and_iso_dates():
    row = SimpleNamespace(
        collection_id="c1",
        artwork_id="a1",
        position=3,
        added_at=datetime(2026, 1, 2, 3, 4, 5),
    )
    assert MEMBERSHIP_FIELDS.serialize(row) == {
        "collectionId": "c1",
        "artworkId": "a1",
        "position": 3,
        "addedAt": "2026-01-02T03:04:05",
    }
