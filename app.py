from __future__ import annotations

from flask import Flask, current_app, jsonify, request
from flask.cli import with_appcontext
from flask_migrate import upgrade
from flask_wtf.csrf import CSRFError
import click
from werkzeug.middleware.proxy_fix import ProxyFix

from sqlalchemy import inspect

from config import Config
from extensions import csrf, db, login_manager, migrate
from models import User
from services.accounts import provision_user
from views.api import api_bp
from views.artworks import artworks_bp
from views.collections import collections_bp
from views.galleries import galleries_bp


DEPLOYED_ENVS = {"production", "staging"}


def create_app(config_object: object | None = None) -> Flask:
    """Flaskアプリケーションを生成し、Blueprintを登録する。"""

    app = Flask(__name__)
    app.config.from_object(Config)
    if config_object:
        if isinstance(config_object, dict):
            app.config.update(config_object)
        else:
            app.config.from_object(config_object)

    apply_proxy_fix(app)
    ensure_secret_key(app)
    ensure_database_url(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    register_auth_handlers()
    register_security_handlers(app)
    register_cli(app)

    register_blueprints(app)
    maybe_auto_migrate(app)
    maybe_auto_init_user(app)
    return app


def apply_proxy_fix(app: Flask) -> None:
    """リバースプロキシ配下で X-Forwarded-* ヘッダーを反映する。"""

    if not is_deployed(app):
        return

    app.wsgi_app = ProxyFix(
        app.wsgi_app,
        x_for=1,
        x_proto=1,
        x_host=1,
        x_port=1,
        x_prefix=1,
    )


def ensure_secret_key(app: Flask) -> None:
    """SECRET_KEY が設定されていない場合は起動を停止する。"""

    secret_key = app.config.get("SECRET_KEY")
    if not secret_key:
        app.logger.critical("SECRET_KEY is not set. Set it in .env before starting.")
        raise RuntimeError("SECRET_KEY is not set. Set it in .env before starting.")


def is_deployed(app: Flask) -> bool:
    return (app.config.get("APP_ENV") or "").strip().lower() in DEPLOYED_ENVS


def ensure_database_url(app: Flask) -> None:
    """本番・ステージングではMySQLの接続設定を必須にする。"""

    if not is_deployed(app):
        return

    database_url = app.config.get("SQLALCHEMY_DATABASE_URI")
    if not database_url:
        message = "Database is not configured. Set DATABASE_URL or DB_* env vars."
        app.logger.critical(message)
        raise RuntimeError(message)
    if database_url.startswith("sqlite"):
        message = "SQLite is not allowed in production. Configure MySQL via DATABASE_URL or DB_*."
        app.logger.critical(message)
        raise RuntimeError(message)


def ensure_initial_user(app: Flask) -> None:
    """環境変数からイニシャルユーザーを作成する。デフォルトギャラリーも同時に作成される。"""

    inspector = inspect(db.engine)
    if "users" not in inspector.get_table_names():
        app.logger.info(
            "users table not found. Run 'flask --app app.py db upgrade' or 'flask --app app.py init-db'."
        )
        return

    username = app.config.get("INITIAL_USER_USERNAME")
    email = app.config.get("INITIAL_USER_EMAIL")
    password = app.config.get("INITIAL_USER_PASSWORD")
    if not username or not email or not password:
        app.logger.info("イニシャルユーザーの環境変数が未設定のため作成をスキップしました。")
        return

    if User.query.filter((User.username == username) | (User.email == email)).first():
        return

    if User.query.first() is not None:
        app.logger.warning("既存ユーザーが存在するためイニシャルユーザーの作成をスキップしました。")
        return

    provision_user(
        db.session,
        username=username,
        email=email,
        password=password,
        role="admin",
        artwork_limit=app.config.get("DEFAULT_ARTWORK_LIMIT"),
    )
    app.logger.info("イニシャルユーザーを作成しました。")


def maybe_auto_migrate(app: Flask) -> None:
    """開発環境に限り、起動時にマイグレーションを適用する。"""

    if not app.config.get("APP_AUTO_MIGRATE"):
        return
    if is_deployed(app):
        app.logger.info("APP_AUTO_MIGRATE is ignored in production/staging.")
        return
    with app.app_context():
        upgrade()
        app.logger.info("Auto migration completed.")


def maybe_auto_init_user(app: Flask) -> None:
    """APP_AUTO_INIT_USER が有効なら起動時にイニシャルユーザーを作成する。"""

    if not app.config.get("APP_AUTO_INIT_USER"):
        return
    with app.app_context():
        ensure_initial_user(app)


def register_blueprints(app: Flask) -> None:
    """Blueprintをまとめて登録するヘルパー。"""

    app.register_blueprint(api_bp)
    app.register_blueprint(galleries_bp)
    app.register_blueprint(collections_bp)
    app.register_blueprint(artworks_bp)


def register_auth_handlers() -> None:
    """API向けの未認証応答をJSONで返す。"""

    @login_manager.unauthorized_handler
    def unauthorized():  # type: ignore[override]
        if request.path.startswith("/api/"):
            return jsonify({"error": "認証が必要です。"}), 401
        return "認証が必要です。", 401


def register_security_handlers(app: Flask) -> None:
    """API の更新系リクエストに同一オリジンを要求し、CSRFエラーをJSONで返す。"""

    @app.before_request
    def enforce_api_origin():
        if not request.path.startswith("/api/"):
            return None
        if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
            return None

        host_url = request.host_url.rstrip("/")
        origin = request.headers.get("Origin")
        referer = request.headers.get("Referer")

        if origin and not origin.startswith(host_url):
            return jsonify({"error": "Invalid request origin."}), 403
        if not origin and referer and not referer.startswith(host_url):
            return jsonify({"error": "Invalid request origin."}), 403
        return None

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error: CSRFError):  # type: ignore[override]
        if request.path.startswith("/api/"):
            return jsonify({"error": "CSRF token missing or invalid."}), 400
        return "CSRF token missing or invalid.", 400


def register_cli(app: Flask) -> None:
    """`flask init-db` でスキーマ適用とイニシャルユーザー作成をまとめて行う。"""

    @app.cli.command("init-db")
    @with_appcontext
    def init_db_command() -> None:
        upgrade()
        ensure_initial_user(current_app)
        click.echo("Database initialized.")
