"""Presigned download/upload URLs and play-history side effects"""
import re
import uuid

from sqlalchemy import func, select

from beatstream.api import tasks
from beatstream.api.db import get_db_session
from beatstream.api.models import PlayHistory


def _history_count():
    with get_db_session() as db:
        return db.scalar(select(func.count()).select_from(PlayHistory))


def test_stream_url_is_presigned_for_five_minutes(client, user_headers, make_song, s3_client):
    song_id = make_song(title="Gajah", audio_key="audio/abc-Gajah.mp3")

    response = client.post(f"/songs/{song_id}/stream-url", headers=user_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["expires_in"] == 300
    assert body["song_id"] == str(song_id)
    assert body["title"] == "Gajah"
    assert body["url"] == "https://r2.test/audio/abc-Gajah.mp3?op=get_object&expires=300"
    s3_client.generate_presigned_url.assert_called_once_with(
        "get_object", Params={"Bucket": "beatstream-test", "Key": "audio/abc-Gajah.mp3"}, ExpiresIn=300
    )


def test_each_stream_url_appends_one_history_row(client, user, user_headers, make_song):
    song_id = make_song()

    client.post(f"/songs/{song_id}/stream-url", headers=user_headers)
    client.post(f"/songs/{song_id}/stream-url", headers=user_headers)

    with get_db_session() as db:
        rows = db.execute(select(PlayHistory)).scalars().all()
    assert len(rows) == 2
    assert {(r.user_id, r.song_id) for r in rows} == {(user.id, song_id)}


def test_history_failure_does_not_change_the_response(client, user_headers, make_song, monkeypatch):
    song_id = make_song()

    def broken_session():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(tasks, "get_db_session", broken_session)
    response = client.post(f"/songs/{song_id}/stream-url", headers=user_headers)

    assert response.status_code == 200
    assert response.json()["expires_in"] == 300
    assert _history_count() == 0


def test_stream_url_for_unknown_song_is_404(client, user_headers):
    response = client.post(f"/songs/{uuid.uuid4()}/stream-url", headers=user_headers)

    assert response.status_code == 404
    assert response.json() == {"error": "Song not found."}
    assert _history_count() == 0


def test_stream_url_requires_login(client, make_song):
    song_id = make_song()

    response = client.post(f"/songs/{song_id}/stream-url")

    assert response.status_code == 401


def test_upload_url_for_covers_has_public_url(client, admin_headers, s3_client):
    response = client.post(
        "/songs/upload-url",
        json={"file_name": "My Cover (final).jpg", "file_type": "image/jpeg", "folder": "covers"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["expires_in"] == 600
    assert re.fullmatch(r"covers/[0-9a-z]+-[0-9a-z]{5}-My_Cover__final_\.jpg", body["object_key"])
    assert body["public_url"] == f"https://cdn.test/{body['object_key']}"
    assert body["upload_url"] == f"https://r2.test/{body['object_key']}?op=put_object&expires=600"
    params = s3_client.generate_presigned_url.call_args.kwargs["Params"]
    assert params["ContentType"] == "image/jpeg"


def test_upload_url_for_audio_defaults_folder(client, admin_headers):
    response = client.post(
        "/songs/upload-url",
        json={"file_name": "track.mp3", "file_type": "audio/mpeg"},
        headers=admin_headers,
    )

    body = response.json()
    assert body["object_key"].startswith("audio/")
    assert body["object_key"].endswith("-track.mp3")
    assert body["public_url"] is None


def test_upload_url_rejects_unknown_folder(client, admin_headers):
    response = client.post(
        "/songs/upload-url",
        json={"file_name": "x.mp3", "file_type": "audio/mpeg", "folder": "secrets"},
        headers=admin_headers,
    )

    assert response.status_code == 400


def test_upload_url_is_admin_only(client, user_headers, s3_client):
    response = client.post(
        "/songs/upload-url",
        json={"file_name": "track.mp3", "file_type": "audio/mpeg"},
        headers=user_headers,
    )

    assert response.status_code == 403
    s3_client.generate_presigned_url.assert_not_called()


def test_upload_url_sanitizes_the_extension_too(client, admin_headers):
    response = client.post(
        "/songs/upload-url",
        json={"file_name": "my song.m p#3", "file_type": "audio/mpeg"},
        headers=admin_headers,
    )

    key = response.json()["object_key"]
    assert re.fullmatch(r"audio/[A-Za-z0-9._-]+", key)
    assert key.endswith("-my_song.m_p_3")
