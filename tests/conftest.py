import pytest
from werkzeug.security import generate_password_hash

from app.issuetracker import create_app
from app.issuetracker.db import session_scope
from app.issuetracker.models import Base, User

from helpers import PASSWORD, USERS


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOGIN_RATE_LIMIT", "1000")
    monkeypatch.setenv("ISSUE_RATE_LIMIT", "1000")
    monkeypatch.setenv("API_RATE_LIMIT", "10000")
    for k in (
        "S3_ENDPOINT",
        "S3_REGION",
        "S3_BUCKET",
        "S3_ACCESS_KEY_ID",
        "S3_SECRET_ACCESS_KEY",
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "CRON_SECRET",
        "DUE_SOON_DAYS",
        "DOMAIN_EXPIRY_DAYS",
    ):
        monkeypatch.delenv(k, raising=False)
    # local storage writes under ./storage
    monkeypatch.chdir(tmp_path)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    ids = {}
    with session_scope(app) as s:
        pw_hash = generate_password_hash(PASSWORD)
        for key, (email, name, role) in USERS.items():
            u = User(email=email, name=name, role=role, password_hash=pw_hash, is_active=True)
            s.add(u)
            s.flush()
            ids[key] = u.id
    app.config["TEST_USER_IDS"] = ids
    return app


@pytest.fixture()
def ids(app):
    return app.config["TEST_USER_IDS"]


@pytest.fixture()
def client(app):
    return app.test_client()
