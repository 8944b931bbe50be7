from __future__ import annotations

import json

import pytest

from app import create_app
from extensions import db
from models import Gallery, GalleryRole, User
from services.accounts import provision_user


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
        for username in ("owner", "alice", "bob"):
            provision_user(
                db.session,
                username=username,
                email=f"{username}@example.com",
                password="password123",
            )
    yield app


@pytest.fixture
def client(app):
    client = app.test_client()
    login(client, "owner")
    return client


@pytest.fixture
def alice_client(app):
    client = app.test_client()
    login(client, "alice")
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


def user_id(app, username: str) -> int:
    with app.app_context():
        return User.query.filter_by(username=username).first().id


@pytest.fixture
def gallery_id(app):
    with app.app_context():
        owner = User.query.filter_by(username="owner").first()
        return Gallery.query.filter_by(user_id=owner.id, is_default=True).first().id


def role_rows(app, gallery_id: str) -> list[tuple[int, str]]:
    with app.app_context():
        rows = GalleryRole.query.filter_by(gallery_id=gallery_id).order_by(GalleryRole.user_id).all()
        return [(row.user_id, row.role) for row in rows]


def test_creator_grants_admin(client, app, gallery_id):
    response = send(client, "POST", f"/api/galleries/{gallery_id}/roles", {"username": "alice", "role": "admin"})
    assert response.status_code == 201
    role = json.loads(response.data)["role"]
    assert role["userId"] == user_id(app, "alice")
    assert role["role"] == "admin"
    assert role["grantedBy"] == user_id(app, "owner")


def test_duplicate_grant_conflicts_and_leaves_roles_unchanged(client, app, gallery_id):
    send(client, "POST", f"/api/galleries/{gallery_id}/roles", {"username": "alice"})
    before = role_rows(app, gallery_id)

    response = send(client, "POST", f"/api/galleries/{gallery_id}/roles", {"username": "alice"})
    assert response.status_code == 409
    assert json.loads(response.data)["error_code"] == "conflict"
    assert role_rows(app, gallery_id) == before


@pytest.mark.parametrize(
    "payload, status",
    [
        ({"username": "owner"}, 400),
        ({"username": "nobody"}, 404),
        ({"username": "alice", "role": "creator"}, 400),
        ({}, 400),
    ],
)
def test_invalid_grants(client, app, gallery_id, payload, status):
    response = send(client, "POST", f"/api/galleries/{gallery_id}/roles", payload)
    assert response.status_code == status
    assert role_rows(app, gallery_id) == [(user_id(app, "owner"), "creator")]


def test_list_roles_orders_creator_first_then_newest_admin(client, app, gallery_id):
    send(client, "POST", f"/api/galleries/{gallery_id}/roles", {"username": "alice"})
    send(client, "POST", f"/api/galleries/{gallery_id}/roles", {"username": "bob"})

    response = client.get(f"/api/galleries/{gallery_id}/roles")
    assert response.status_code == 200
    roles = json.loads(response.data)["roles"]
    assert [(r["username"], r["role"]) for r in roles] == [
        ("owner", "creator"),
        ("bob", "admin"),
        ("alice", "admin"),
    ]
    assert roles[0]["grantedBy"] is None


def test_non_creator_is_forbidden_from_role_management(client, alice_client, app, gallery_id):
    bob_id = user_id(app, "bob")

    assert alice_client.get(f"/api/galleries/{gallery_id}/roles").status_code == 403
    response = send(alice_client, "POST", f"/api/galleries/{gallery_id}/roles", {"username": "bob"})
    assert response.status_code == 403
    assert send(alice_client, "DELETE", f"/api/galleries/{gallery_id}/roles/{bob_id}").status_code == 403

    send(client, "POST", f"/api/galleries/{gallery_id}/roles", {"username": "alice"})
    response = send(alice_client, "POST", f"/api/galleries/{gallery_id}/roles", {"username": "bob"})
    assert response.status_code == 403
    assert alice_client.get(f"/api/galleries/{gallery_id}/roles").status_code == 403


def test_revoke_admin(client, app, gallery_id):
    send(client, "POST", f"/api/galleries/{gallery_id}/roles", {"username": "alice"})
    alice_id = user_id(app, "alice")

    response = send(client, "DELETE", f"/api/galleries/{gallery_id}/roles/{alice_id}")
    assert response.status_code == 200
    assert role_rows(app, gallery_id) == [(user_id(app, "owner"), "creator")]

    response = send(client, "DELETE", f"/api/galleries/{gallery_id}/roles/{alice_id}")
    assert response.status_code == 404


def test_creator_role_cannot_be_revoked(client, app, gallery_id):
    owner_id = user_id(app, "owner")
    response = send(client, "DELETE", f"/api/galleries/{gallery_id}/roles/{owner_id}")
    assert response.status_code == 400
    assert role_rows(app, gallery_id) == [(owner_id, "creator")]


def test_role_management_on_missing_gallery(client):
    assert client.get("/api/galleries/missing/roles").status_code == 404
    assert send(client, "POST", "/api/galleries/missing/roles", {"username": "alice"}).status_code == 404
