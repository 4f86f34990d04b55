"""Google login, session tokens and the auth/admin dependencies"""
from unittest.mock import MagicMock

import pytest
from google.auth import exceptions as google_exceptions
from sqlalchemy import func, select

from beatstream.api.auth import create_access_token, decode_access_token
from beatstream.api.db import get_db_session
from beatstream.api.errors import AuthenticationError, UpstreamError
from beatstream.api.identity import GoogleIdentityVerifier, IdentityClaims, get_identity_verifier
from beatstream.api.main import app
from beatstream.api.models import Artist, PlayHistory, Playlist, Role, Song, User


class FakeVerifier:
    def __init__(self, claims=None, error=None):
        self.claims = claims
        self.error = error
        self.tokens = []

    def verify(self, token):
        self.tokens.append(token)
        if self.error:
            raise self.error
        return self.claims


@pytest.fixture
def verifier():
    fake = FakeVerifier(
        IdentityClaims(subject="google-123", email="rani@example.com", name="Rani", picture="https://img.test/a.png")
    )
    app.dependency_overrides[get_identity_verifier] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_identity_verifier, None)


def _user_count():
    with get_db_session() as db:
        return db.scalar(select(func.count()).select_from(User))


def test_login_creates_user_and_returns_session_token(client, verifier):
    response = client.post("/auth/login", json={"id_token": "google-id-token"})

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "rani@example.com"
    assert body["user"]["role"] == "USER"
    assert verifier.tokens == ["google-id-token"]

    identity = decode_access_token(body["token"])
    assert str(identity.user_id) == body["user"]["id"]
    assert identity.role == "USER"


def test_login_is_idempotent_on_email(client, verifier):
    first = client.post("/auth/login", json={"id_token": "t1"}).json()

    verifier.claims = IdentityClaims(subject="google-123", email="rani@example.com", name="Rani Updated")
    second = client.post("/auth/login", json={"id_token": "t2"}).json()

    assert first["user"]["id"] == second["user"]["id"]
    assert second["user"]["name"] == "Rani Updated"
    assert second["user"]["avatar_url"] == "https://img.test/a.png"
    assert _user_count() == 1


def test_login_keeps_existing_role(client, verifier, admin):
    verifier.claims = IdentityClaims(subject="google-admin", email=admin.email, name="Admin")

    body = client.post("/auth/login", json={"id_token": "t"}).json()

    assert body["user"]["role"] == "ADMIN"
    assert decode_access_token(body["token"]).is_admin


def test_login_with_rejected_token_is_401(client, verifier):
    verifier.error = AuthenticationError("Invalid Google token.")

    response = client.post("/auth/login", json={"id_token": "bad"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid Google token."}
    assert _user_count() == 0


def test_login_requires_id_token(client, verifier):
    response = client.post("/auth/login", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request."
    assert response.json()["details"][0]["loc"] == ["body", "id_token"]


def test_me_requires_token(client):
    response = client.get("/auth/me")

    assert response.status_code == 401
    assert response.json() == {"error": "Missing bearer token. Please log in first."}


def test_me_rejects_tampered_and_expired_tokens(client, user, monkeypatch):
    token = create_access_token(user_id=user.id, email=user.email, role=user.role)
    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}x"})
    assert response.status_code == 401

    monkeypatch.setenv("JWT_EXPIRES_MINUTES", "-5")
    expired = create_access_token(user_id=user.id, email=user.email, role=user.role)
    response = client.get("/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or expired token."}


def test_me_returns_profile_with_counts(client, user, user_headers, make_song):
    song_id = make_song()
    with get_db_session() as db:
        db.add(Playlist(name="Favorites", user_id=user.id))
        db.add(PlayHistory(user_id=user.id, song_id=song_id))
        db.add(PlayHistory(user_id=user.id, song_id=song_id))

    body = client.get("/auth/me", headers=user_headers).json()

    assert body["email"] == user.email
    assert body["playlist_count"] == 1
    assert body["play_count"] == 2


def test_user_token_on_admin_route_is_403_without_side_effects(client, user_headers, make_song, s3_client):
    song_id = make_song()

    created = client.post("/artists", json={"name": "New Artist"}, headers=user_headers)
    deleted = client.delete(f"/songs/{song_id}", headers=user_headers)

    assert created.status_code == 403
    assert created.json() == {"error": "Admin access required."}
    assert deleted.status_code == 403
    with get_db_session() as db:
        assert db.execute(select(Artist).where(Artist.name == "New Artist")).first() is None
        assert db.get(Song, song_id) is not None
    s3_client.delete_object.assert_not_called()


def test_token_carries_role_claim(admin):
    token = create_access_token(user_id=admin.id, email=admin.email, role=Role.ADMIN.value)
    identity = decode_access_token(token)

    assert identity.user_id == admin.id
    assert identity.email == admin.email
    assert identity.is_admin


def test_google_verifier_extracts_claims():
    verify = MagicMock(
        return_value={"sub": "123", "email": "Rani@Example.com", "name": "Rani", "picture": "https://img.test/p"}
    )
    verifier = GoogleIdentityVerifier("client-id", verify=verify)

    claims = verifier.verify("token")

    assert claims == IdentityClaims(subject="123", email="rani@example.com", name="Rani", picture="https://img.test/p")
    assert verify.call_args.kwargs["audience"] == "client-id"


def test_google_verifier_rejects_invalid_token():
    verifier = GoogleIdentityVerifier("client-id", verify=MagicMock(side_effect=ValueError("Wrong audience.")))

    with pytest.raises(AuthenticationError):
        verifier.verify("token")


def test_google_verifier_requires_email():
    verifier = GoogleIdentityVerifier("client-id", verify=MagicMock(return_value={"sub": "123"}))

    with pytest.raises(AuthenticationError):
        verifier.verify("token")


def test_google_verifier_maps_transport_errors():
    verify = MagicMock(side_effect=google_exceptions.TransportError("certs unreachable"))
    verifier = GoogleIdentityVerifier("client-id", verify=verify)

    with pytest.raises(UpstreamError):
        verifier.verify("token")

