"""
Shared fixtures.

Settings are overridden through the environment BEFORE the application is
imported. Each test gets a fresh in-memory MongoDB (mongomock) injected
through the `get_db` dependency, so no database server is needed.
"""

import os
import tempfile
from types import SimpleNamespace

os.environ["JWT_SECRET"] = "test-secret-not-real"
os.environ["DB_NAME"] = "socialhub_test"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="socialhub_test_")
os.environ["LOG_LEVEL"] = "WARNING"

import mongomock
import pytest
from bson.objectid import ObjectId
from fastapi.testclient import TestClient

from socialhub.config import settings
from socialhub.database import ensure_indexes, get_db
from socialhub.main import create_app


@pytest.fixture
def db():
    database = mongomock.MongoClient()["socialhub_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    target = tmp_path / "uploads"
    monkeypatch.setattr(settings, "upload_dir", str(target))
    return target


@pytest.fixture
def client(db, upload_dir):
    """
    TestClient bound to a fresh app.

    Used without a `with` block so the lifespan (real MongoDB connection)
    never runs.
    """
    app = create_app()
    app.dependency_overrides[get_db] = lambda: db
    return TestClient(app)


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(client, db):
    """
    Factory registering a user through the API.

        alice = make_user("alice")
        client.get("/api/auth/me", headers=alice.headers)
    """

    def _make(username, email=None, password="secret123", admin=False):
        resp = client.post(
            "/api/auth/register",
            json={
                "username": username,
                "email": email or f"{username}@socialhub.io",
                "password": password,
            },
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        user_id = body["user"]["id"]
        if admin:
            db.users.update_one({"_id": ObjectId(user_id)}, {"$set": {"isAdmin": True}})
        return SimpleNamespace(
            id=user_id,
            username=username,
            password=password,
            token=body["token"],
            headers=auth_header(body["token"]),
        )

    return _make


@pytest.fixture
def make_post(client):
    def _make(owner, title="Hello", category="General", description="", **extra):
        resp = client.post(
            "/api/post",
            data={"title": title, "category": category, "description": description, **extra},
            headers=owner.headers,
        )
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _make


@pytest.fixture
def sample_image_bytes():
    # smallest well-formed PNG header; contents are never decoded
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
