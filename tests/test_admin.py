from __future__ import annotations

import json

import pytest

from app import create_app, ensure_initial_user
from extensions import db
from models import Collection, Gallery, GalleryRole, User
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
            "DEFAULT_ARTWORK_LIMIT": 300,
        }
    )
    with app.app_context():
        db.create_all()
        provision_user(
            db.session,
            username="admin",
            email="admin@example.com",
            password="password123",
            role="admin",
        )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


def get_csrf_token(client):
    response = client.get("/api/csrf")
    payload = json.loads(response.data)
    return payload["csrf_token"]


def login_admin(client):
    return login_user(client, "admin", "password123")


def login_user(client, username: str, password: str):
    csrf_token = get_csrf_token(client)
    return client.post(
        "/api/auth/login",
        json={"username": username, "password": password},
        headers={"X-CSRFToken": csrf_token},
    )


def test_admin_can_create_user_with_default_gallery(client, app):
    login_admin(client)
    response = client.post(
        "/api/admin/users",
        json={"username": "member", "email": "member@example.com", "password": "pass1234"},
        headers={"X-CSRFToken": get_csrf_token(client)},
    )
    assert response.status_code == 201
    payload = json.loads(response.data)
    assert payload["user"]["username"] == "member"
    assert payload["user"]["artwork_limit"] == 300

    with app.app_context():
        created = User.query.filter_by(username="member").first()
        assert created is not None
        assert created.is_active is True
        gallery = Gallery.query.filter_by(user_id=created.id).one()
        assert (gallery.slug, gallery.name, gallery.is_default) == ("my-gallery", "My Gallery", True)
        collection = Collection.query.filter_by(gallery_id=gallery.id).one()
        assert (collection.slug, collection.is_default) == ("my-collection", True)
        role = db.session.get(GalleryRole, (gallery.id, created.id))
        assert role.role == "creator"


def test_admin_create_user_rejects_duplicates(client, app):
    login_admin(client)
    response = client.post(
        "/api/admin/users",
        json={"username": "admin", "email": "another@example.com", "password": "pass1234"},
        headers={"X-CSRFToken": get_csrf_token(client)},
    )
    assert response.status_code == 400
    with app.app_context():
        assert User.query.count() == 1
        assert Gallery.query.count() == 1


def test_non_admin_cannot_create_user(client, app):
    with app.app_context():
        provision_user(db.session, username="member", email="member@example.com", password="member-password")

    login_user(client, "member", "member-password")
    response = client.post(
        "/api/admin/users",
        json={"username": "sneaky", "email": "sneaky@example.com", "password": "pass1234"},
        headers={"X-CSRFToken": get_csrf_token(client)},
    )
    assert response.status_code == 403


def test_me_reports_default_gallery(client, app):
    login_admin(client)
    payload = json.loads(client.get("/api/me").data)
    assert payload["authenticated"] is True
    with app.app_context():
        gallery = Gallery.query.filter_by(is_default=True).one()
        assert payload["user"]["default_gallery_id"] == gallery.id


def test_inactive_user_cannot_login(client, app):
    with app.app_context():
        user = User(username="inactive", email="inactive@example.com")
        user.set_password("password123")
        user.is_active = False
        db.session.add(user)
        db.session.commit()

    response = client.post(
        "/api/auth/login",
        json={"username": "inactive", "password": "password123"},
        headers={"X-CSRFToken": get_csrf_token(client)},
    )
    assert response.status_code == 403


def test_admin_can_deactivate_user_but_not_self(client, app):
    with app.app_context():
        member = provision_user(db.session, username="member", email="member@example.com", password="pw")
        member_id = member.id
        admin_id = User.query.filter_by(username="admin").first().id

    login_admin(client)
    response = client.patch(
        f"/api/admin/users/{member_id}/status",
        json={"is_active": False},
        headers={"X-CSRFToken": get_csrf_token(client)},
    )
    assert response.status_code == 200
    assert json.loads(response.data)["user"]["is_active"] is False

    response = client.patch(
        f"/api/admin/users/{admin_id}/status",
        json={"is_active": "false"},
        headers={"X-CSRFToken": get_csrf_token(client)},
    )
    assert response.status_code == 400


def test_user_can_change_own_password(client, app):
    with app.app_context():
        user = User(username="member", email="member@example.com")
        user.set_password("old-password")
        db.session.add(user)
        db.session.commit()

    login_user(client, "member", "old-password")
    response = client.patch(
        "/api/users/me/password",
        json={"current_password": "old-password", "new_password": "new-password"},
        headers={"X-CSRFToken": get_csrf_token(client)},
    )
    assert response.status_code == 200
    payload = json.loads(response.data)
    assert payload["ok"] is True

    logout_response = client.post("/api/auth/logout", headers={"X-CSRFToken": get_csrf_token(client)})
    assert logout_response.status_code == 200

    old_login_response = login_user(client, "member", "old-password")
    assert old_login_response.status_code == 401

    new_login_response = login_user(client, "member", "new-password")
    assert new_login_response.status_code == 200


def test_change_own_password_requires_current_password_match(client, app):
    with app.app_context():
        user = User(username="member", email="member@example.com")
        user.set_password("old-password")
        db.session.add(user)
        db.session.commit()

    login_user(client, "member", "old-password")
    response = client.patch(
        "/api/users/me/password",
        json={"current_password": "invalid", "new_password": "new-password"},
        headers={"X-CSRFToken": get_csrf_token(client)},
    )
    assert response.status_code == 400


def test_initial_user_is_provisioned_once(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'initial.db'}",
            "SECRET_KEY": "test-secret",
            "APP_AUTO_MIGRATE": False,
            "APP_AUTO_INIT_USER": False,
            "INITIAL_USER_USERNAME": "root",
            "INITIAL_USER_EMAIL": "root@example.com",
            "INITIAL_USER_PASSWORD": "root-password",
        }
    )
    with app.app_context():
        db.create_all()
        ensure_initial_user(app)
        ensure_initial_user(app)

        root = User.query.filter_by(username="root").one()
        assert root.is_admin is True
        assert root.is_initial_user is True
        assert Gallery.query.filter_by(user_id=root.id, is_default=True).count() == 1
