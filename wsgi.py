"""本番用WSGIエントリポイント。

Gunicorn などからは本ファイルの `app` を参照して起動する（例: `gunicorn wsgi:app`）。
テストでは `app.py` の `create_app()` に設定辞書を渡して直接呼び出す。
"""

from __future__ import annotations

from flask import Flask

from app import create_app


app: Flask = create_app()


if __name__ == "__main__":
    # ローカル確認用: `python wsgi.py`
    app.run(debug=bool(app.config.get("DEBUG")))
