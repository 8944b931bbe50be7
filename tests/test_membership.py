from __future__ import annotations

import json

import pytest

from app import create_app
from extensions import db
from models import Collection, CollectionArtwork, Gallery, User
from services.accounts import provision_user
from services.errors import BadRequestError
from services.membership import MembershipOrderer


@pytest.fixture
def app(tmp_path):
    db_path = tmp_path / "test.db"
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SECRET_KEY": "test-secret",
            "APP_AUTO_MIGRATE": False,
            "APP_AUTO_INIT_USER": False,
        }
    )
    with app.app_context():
        db.create_all()
        provision_user(db.session, username="owner", email="owner@example.com", password="password123")
        provision_user(db.session, username="other", email="other@example.com", password="password123")
    yield app


@pytest.fixture
def client(app):
    client = app.test_client()
    login(client, "owner")
    return client


@pytest.fixture
def other_client(app):
    client = app.test_client()
    login(client, "other")
    return client


def get_csrf_token(client):
    response = client.get("/api/csrf")
    payload = json.loads(response.data)
    return payload["csrf_token"]


def login(client, username: str, password: str = "password123"):
    return client.post(
        "/api/auth/login",
        json={"username": username, "password": password},
        headers={"X-CSRFToken": get_csrf_token(client)},
    )


def send(client, method: str, url: str, payload=None):
    return client.open(url, method=method, json=payload, headers={"X-CSRFToken": get_csrf_token(client)})


def default_gallery_id(app, username: str = "owner") -> str:
    with app.app_context():
        user = User.query.filter_by(username=username).first()
        return Gallery.query.filter_by(user_id=user.id, is_default=True).first().id


def create_collection(client, gallery_id: str, name: str) -> dict:
    response = send(client, "POST", f"/api/galleries/{gallery_id}/collections", {"name": name})
    return json.loads(response.data)["collection"]


def create_artwork(client, title: str) -> dict:
    response = send(client, "POST", "/api/artworks", {"title": title, "imageKey": f"images/{title}.png"})
    return json.loads(response.data)["artwork"]


def positions(app, collection_id: str) -> list[tuple[str, int]]:
    with app.app_context():
        rows = (
            CollectionArtwork.query.filter_by(collection_id=collection_id)
            .order_by(CollectionArtwork.position.asc())
            .all()
        )
        return [(row.artwork_id, row.position) for row in rows]


@pytest.fixture
def filled(client, app):
    """A, B, C を順に追加したコレクションを用意する。"""

    collection = create_collection(client, default_gallery_id(app), "Sketches")
    artworks = {title: create_artwork(client, title)["id"] for title in ("A", "B", "C")}
    for artwork_id in artworks.values():
        response = send(client, "POST", f"/api/collections/{collection['id']}/artworks", {"artworkId": artwork_id})
        assert response.status_code == 201
    return collection["id"], artworks


def test_add_appends_at_next_position(app, filled):
    collection_id, artworks = filled
    assert positions(app, collection_id) == [(artworks["A"], 0), (artworks["B"], 1), (artworks["C"], 2)]


def test_remove_then_reorder_scenario(client, app, filled):
    collection_id, artworks = filled

    response = send(client, "DELETE", f"/api/collections/{collection_id}/artworks/{artworks['B']}")
    assert response.status_code == 200
    assert positions(app, collection_id) == [(artworks["A"], 0), (artworks["C"], 1)]

    response = send(
        client,
        "PATCH",
        f"/api/collections/{collection_id}/artworks/reorder",
        {"artworkIds": [artworks["C"], artworks["A"]]},
    )
    assert response.status_code == 200
    payload = json.loads(response.data)
    assert [(m["artworkId"], m["position"]) for m in payload["memberships"]] == [
        (artworks["C"], 0),
        (artworks["A"], 1),
    ]
    assert positions(app, collection_id) == [(artworks["C"], 0), (artworks["A"], 1)]


def test_remove_first_renumbers_from_zero(client, app, filled):
    collection_id, artworks = filled
    send(client, "DELETE", f"/api/collections/{collection_id}/artworks/{artworks['A']}")
    assert positions(app, collection_id) == [(artworks["B"], 0), (artworks["C"], 1)]

    artwork_id = create_artwork(client, "D")["id"]
    send(client, "POST", f"/api/collections/{collection_id}/artworks", {"artworkId": artwork_id})
    assert positions(app, collection_id)[-1] == (artwork_id, 2)


def test_add_duplicate_is_rejected(client, app, filled):
    collection_id, artworks = filled
    before = positions(app, collection_id)
    response = send(client, "POST", f"/api/collections/{collection_id}/artworks", {"artworkId": artworks["A"]})
    assert response.status_code == 400
    assert positions(app, collection_id) == before


def test_add_requires_gallery_owners_artwork(client, other_client, app, filled):
    collection_id, _ = filled
    foreign = create_artwork(other_client, "Foreign")["id"]
    response = send(client, "POST", f"/api/collections/{collection_id}/artworks", {"artworkId": foreign})
    assert response.status_code == 404

    response = send(client, "POST", f"/api/collections/{collection_id}/artworks", {"artworkId": "missing"})
    assert response.status_code == 404


def test_add_deleted_artwork_is_not_found(client, app, filled):
    collection_id, _ = filled
    artwork_id = create_artwork(client, "Gone")["id"]
    send(client, "DELETE", f"/api/artworks/{artwork_id}")
    response = send(client, "POST", f"/api/collections/{collection_id}/artworks", {"artworkId": artwork_id})
    assert response.status_code == 404


def test_remove_missing_pair_is_not_found(client, app, filled):
    collection_id, _ = filled
    loose = create_artwork(client, "Loose")["id"]
    response = send(client, "DELETE", f"/api/collections/{collection_id}/artworks/{loose}")
    assert response.status_code == 404
    assert len(positions(app, collection_id)) == 3


@pytest.mark.parametrize(
    "build_ids, message_fragment",
    [
        (lambda ids: [ids["A"], ids["B"]], "件数"),
        (lambda ids: [ids["A"], ids["A"], ids["B"]], "重複"),
        (lambda ids: [ids["A"], ids["B"], "unknown"], "含まれていない"),
    ],
)
def test_invalid_reorder_leaves_positions_unchanged(client, app, filled, build_ids, message_fragment):
    collection_id, artworks = filled
    before = positions(app, collection_id)
    response = send(
        client,
        "PATCH",
        f"/api/collections/{collection_id}/artworks/reorder",
        {"artworkIds": build_ids(artworks)},
    )
    assert response.status_code == 400
    assert message_fragment in json.loads(response.data)["error"]
    assert positions(app, collection_id) == before


def test_reorder_rejects_malformed_body(client, app, filled):
    collection_id, _ = filled
    response = send(client, "PATCH", f"/api/collections/{collection_id}/artworks/reorder", {"artworkIds": "A"})
    assert response.status_code == 400


def test_reorder_bumps_collection_updated_at(client, app, filled):
    collection_id, artworks = filled
    with app.app_context():
        before = db.session.get(Collection, collection_id).updated_at
    send(
        client,
        "PATCH",
        f"/api/collections/{collection_id}/artworks/reorder",
        {"artworkIds": [artworks["C"], artworks["B"], artworks["A"]]},
    )
    with app.app_context():
        assert db.session.get(Collection, collection_id).updated_at > before


def test_soft_deleting_artwork_renumbers_every_collection(client, app, filled):
    collection_id, artworks = filled
    second = create_collection(client, default_gallery_id(app), "Favourites")
    for title in ("B", "C"):
        send(client, "POST", f"/api/collections/{second['id']}/artworks", {"artworkId": artworks[title]})

    response = send(client, "DELETE", f"/api/artworks/{artworks['B']}")
    assert response.status_code == 200
    assert sorted(json.loads(response.data)["removedFromCollections"]) == sorted([collection_id, second["id"]])

    assert positions(app, collection_id) == [(artworks["A"], 0), (artworks["C"], 1)]
    assert positions(app, second["id"]) == [(artworks["C"], 0)]


def test_outsider_cannot_change_membership(other_client, app, filled):
    collection_id, artworks = filled
    response = send(other_client, "DELETE", f"/api/collections/{collection_id}/artworks/{artworks['A']}")
    assert response.status_code == 403
    response = send(
        other_client,
        "PATCH",
        f"/api/collections/{collection_id}/artworks/reorder",
        {"artworkIds": [artworks["C"], artworks["B"], artworks["A"]]},
    )
    assert response.status_code == 403
    assert len(positions(app, collection_id)) == 3


def test_gallery_admin_can_reorder(client, other_client, app, filled):
    collection_id, artworks = filled
    response = send(client, "POST", f"/api/galleries/{default_gallery_id(app)}/roles", {"username": "other"})
    assert response.status_code == 201

    response = send(
        other_client,
        "PATCH",
        f"/api/collections/{collection_id}/artworks/reorder",
        {"artworkIds": [artworks["C"], artworks["B"], artworks["A"]]},
    )
    assert response.status_code == 200
    assert positions(app, collection_id) == [(artworks["C"], 0), (artworks["B"], 1), (artworks["A"], 2)]

    response = send(other_client, "DELETE", f"/api/collections/{collection_id}")
    assert response.status_code == 403


def test_orderer_reorder_validates_before_writing(app, filled):
    collection_id, artworks = filled
    with app.app_context():
        owner = User.query.filter_by(username="owner").first()
        orderer = MembershipOrderer(db.session)
        with pytest.raises(BadRequestError):
            orderer.reorder(owner.id, collection_id, [artworks["C"], artworks["C"], artworks["A"]])
        assert [m.position for m in orderer.members(collection_id)] == [0, 1, 2]
        assert [m.artwork_id for m in orderer.members(collection_id)] == [
            artworks["A"],
            artworks["B"],
            artworks["C"],
        ]
