import io

import pytest

from app.issuetracker import create_app

from helpers import login


@pytest.fixture()
def production_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-long-random-production-secret")
    monkeypatch.setenv("DATABASE_URL", "postgresql://tracker:pw@localhost:5432/tracker")
    return monkeypatch


def test_production_rejects_sqlite(production_env):
    production_env.setenv("DATABASE_URL", "sqlite:///tracker.db")
    with pytest.raises(RuntimeError, match="must be Postgres"):
        create_app()


def test_production_rejects_default_secret_key(production_env):
    production_env.setenv("SECRET_KEY", "change-me")
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app()


def test_oversized_body_returns_json_413(app, ids):
    app.config["MAX_CONTENT_LENGTH"] = 64
    c = login(app, "user")
    r = c.post(
        "/api/files/upload",
        data={"file": (io.BytesIO(b"x" * 1024), "big.bin")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 413
    assert r.json == {"success": False, "error": "Request body too large"}
