"""
Shared fixtures: a Flask app built with test overrides, Mongo swapped for
an in-memory mongomock database, temp dirs for uploads and the local
cache, and a test client already logged in through the session.
"""
import mongomock
import pytest

from app import create_app
from avotrace.mongo import mongo

from tests.helpers import USER_ID


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.delenv("DISABLE_MONGO", raising=False)
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "JWT_SECRET_KEY": "test-jwt-secret-key-0123456789abcdef",
        "UPLOAD_ROOT": str(tmp_path / "uploads"),
        "LOCAL_CACHE_DIR": str(tmp_path / "local_cache"),
        "LOT_AUTO_ARCHIVE": True,
        "LOT_ARCHIVE_DELETE_ORIGINAL": False,
        "DEFAULT_HOURLY_RATE": 15.0,
        "CURRENCY": "MAD",
        "PUBLIC_BASE_URL": "http://avotrace.test",
    })
    monkeypatch.setattr(mongo, "db", mongomock.MongoClient()["avotrace_test"])
    return app

@pytest.fixture
def ctx(app):
    with app.test_request_context():
        yield app

@pytest.fixture
def db(app):
    return mongo.db

@pytest.fixture
def client(app):
    c = app.test_client()
    with c.session_transaction() as sess:
        sess["user_id"] = USER_ID
    return c

@pytest.fixture
def anon_client(app):
    return app.test_client()
