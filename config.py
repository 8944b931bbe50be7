from __future__ import annotations

import os
from urllib.parse import quote_plus

from dotenv import load_dotenv

# .env を読み込んで環境変数を初期化する
load_dotenv()


def _build_database_url() -> str:
    """DATABASE_URL または DB_* からSQLAlchemyの接続URLを組み立てる。"""

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        return database_url

    host = os.environ.get("DB_HOST")
    name = os.environ.get("DB_NAME")
    if not host or not name:
        return "sqlite:///app.db"

    user = quote_plus(os.environ.get("DB_USER", ""))
    password = quote_plus(os.environ.get("DB_PASSWORD", ""))
    port = os.environ.get("DB_PORT", "3306")
    return f"mysql+pymysql://{user}:{password}@{host}:{port}/{name}?charset=utf8mb4"


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Flaskアプリの設定値をまとめたクラス。"""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    APP_ENV = os.environ.get("APP_ENV", "development")
    SQLALCHEMY_DATABASE_URI = _build_database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    APP_AUTO_MIGRATE = _env_flag("APP_AUTO_MIGRATE")
    APP_AUTO_INIT_USER = _env_flag("APP_AUTO_INIT_USER")
    INITIAL_USER_USERNAME = os.environ.get("INITIAL_USER_USERNAME")
    INITIAL_USER_EMAIL = os.environ.get("INITIAL_USER_EMAIL")
    INITIAL_USER_PASSWORD = os.environ.get("INITIAL_USER_PASSWORD")

    # 1ユーザーあたりの上限値
    GALLERY_LIMIT = int(os.environ.get("GALLERY_LIMIT", "500"))
    COLLECTION_LIMIT = int(os.environ.get("COLLECTION_LIMIT", "1000"))
    DEFAULT_ARTWORK_LIMIT = int(os.environ.get("DEFAULT_ARTWORK_LIMIT", "5000"))
    PAGE_SIZE_DEFAULT = 20
    PAGE_SIZE_MAX = 100
