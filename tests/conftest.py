"""Pytest fixtures: in-memory SQLite, fake object storage, users and session tokens."""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client.apps.googleusercontent.com")

import uuid
from typing import Dict, Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from beatstream.api.auth import create_access_token
from beatstream.api.catalog import resolve_artist_by_name
from beatstream.api.db import get_db_session, get_engine, reset_engine
from beatstream.api.main import app
from beatstream.api.models import Base, Role, Song, User
from beatstream.api.storage import ObjectStorage, get_optional_storage, get_storage


@pytest.fixture(autouse=True)
def database() -> Generator:
    """Fresh in-memory database per test"""
    reset_engine()
    engine = get_engine()
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    reset_engine()


@pytest.fixture
def s3_client() -> MagicMock:
    """Mock boto3 S3 client with deterministic presigned URLs"""
    s3 = MagicMock()
    s3.generate_presigned_url.side_effect = (
        lambda operation, Params, ExpiresIn: f"https://r2.test/{Params['Key']}?op={operation}&expires={ExpiresIn}"
    )
    return s3


@pytest.fixture
def storage(s3_client) -> ObjectStorage:
    return ObjectStorage(s3_client, bucket="beatstream-test", public_base_url="https://cdn.test/")


@pytest.fixture
def client(storage) -> Generator:
    """TestClient with object storage replaced by the mock"""
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_optional_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_user(email: str, role: str) -> User:
    with get_db_session() as db:
        user = User(email=email, name=email.split("@", 1)[0], role=role)
        db.add(user)
        db.flush()
        return user


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(user_id=user.id, email=user.email, role=user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user() -> User:
    return _create_user("listener@example.com", Role.USER.value)


@pytest.fixture
def other_user() -> User:
    return _create_user("someone-else@example.com", Role.USER.value)


@pytest.fixture
def admin() -> User:
    return _create_user("admin@example.com", Role.ADMIN.value)


@pytest.fixture
def user_headers(user) -> Dict[str, str]:
    return auth_headers(user)


@pytest.fixture
def admin_headers(admin) -> Dict[str, str]:
    return auth_headers(admin)


@pytest.fixture
def make_song():
    """Factory inserting a song (and its artists by name); returns the song id"""

    def _make(title: str = "Gajah", artists=("Tulus",), **fields) -> uuid.UUID:
        fields.setdefault("duration_sec", 243)
        fields.setdefault("audio_key", f"audio/{uuid.uuid4().hex[:8]}-{title}.mp3")
        with get_db_session() as db:
            song = Song(title=title, artists=[resolve_artist_by_name(db, name) for name in artists], **fields)
            db.add(song)
            db.flush()
            return song.id

    return _make


@pytest.fixture
def storage_unconfigured(client, monkeypatch):
    """Client running against the real storage dependencies with the R2 env vars missing"""
    for name in ("R2_ENDPOINT", "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME"):
        monkeypatch.delenv(name, raising=False)
    get_storage.cache_clear()
    app.dependency_overrides.pop(get_storage, None)
    app.dependency_overrides.pop(get_optional_storage, None)
    yield client
    get_storage.cache_clear()
