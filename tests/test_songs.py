"""Song catalog endpoints: listing, detail, plays, admin edits and deletion"""
import uuid
from unittest.mock import MagicMock

from botocore.exceptions import ClientError
from sqlalchemy import select

from beatstream.api.ai import get_ai_client
from beatstream.api.db import get_db_session
from beatstream.api.main import app
from beatstream.api.models import Album, Artist, Song


def _titles(response):
    return [s["title"] for s in response.json()["songs"]]


def test_list_songs_newest_first_with_duration(client, user_headers, make_song):
    make_song(title="First", duration_sec=65)
    make_song(title="Second", duration_sec=243)

    response = client.get("/songs", headers=user_headers)

    assert response.status_code == 200
    songs = response.json()["songs"]
    assert [s["title"] for s in songs] == ["Second", "First"]
    assert songs[0]["duration"] == "4:03"
    assert songs[1]["duration"] == "1:05"
    assert songs[0]["artists"][0]["name"] == "Tulus"
    assert songs[0]["exists_in_storage"] is None


def test_list_songs_filters(client, user_headers, make_song):
    make_song(title="Gajah", artists=("Tulus",), genre="Pop", moods=["Sad", "Relax"])
    make_song(title="Hati-Hati di Jalan", artists=("Tulus",), genre="Pop", moods=["Energetic"])
    make_song(title="Secukupnya", artists=("Hindia",), genre="Indie")

    assert _titles(client.get("/songs?genre=pop", headers=user_headers)) == ["Hati-Hati di Jalan", "Gajah"]
    assert _titles(client.get("/songs?mood=relax", headers=user_headers)) == ["Gajah"]
    assert _titles(client.get("/songs?q=hindia", headers=user_headers)) == ["Secukupnya"]
    assert _titles(client.get("/songs?q=GAJ", headers=user_headers)) == ["Gajah"]

    with get_db_session() as db:
        hindia_id = db.execute(select(Artist.id).where(Artist.name == "Hindia")).scalar_one()
    assert _titles(client.get(f"/songs?artist={hindia_id}", headers=user_headers)) == ["Secukupnya"]


def test_list_songs_sort_by_plays_and_paging(client, user_headers, make_song):
    make_song(title="Rare", play_count=1)
    make_song(title="Hit", play_count=50)
    make_song(title="Known", play_count=10)

    response = client.get("/songs?sort=plays&limit=2", headers=user_headers)
    assert _titles(response) == ["Hit", "Known"]

    response = client.get("/songs?sort=plays&limit=2&offset=2", headers=user_headers)
    assert _titles(response) == ["Rare"]


def test_list_songs_verify_storage(client, user_headers, make_song, s3_client):
    make_song(title="Present", audio_key="audio/present.mp3")
    make_song(title="Missing", audio_key="audio/missing.mp3")

    def head_object(Bucket, Key):
        if Key == "audio/missing.mp3":
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {}

    s3_client.head_object.side_effect = head_object

    songs = client.get("/songs?verify_storage=true", headers=user_headers).json()["songs"]

    assert {s["title"]: s["exists_in_storage"] for s in songs} == {"Present": True, "Missing": False}


def test_list_songs_requires_login(client):
    assert client.get("/songs").status_code == 401


def test_get_song_detail(client, user_headers, make_song):
    song_id = make_song(title="Gajah", lyrics="la la", moods=["Sad"])

    body = client.get(f"/songs/{song_id}", headers=user_headers).json()["song"]

    assert body["id"] == str(song_id)
    assert body["lyrics"] == "la la"
    assert body["moods"] == ["Sad"]
    assert body["play_count"] == 0


def test_get_song_with_malformed_id_is_400(client, user_headers):
    response = client.get("/songs/not-a-uuid", headers=user_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request."


def test_play_increments_count_and_records_history(client, user_headers, make_song):
    song_id = make_song()

    client.post(f"/songs/{song_id}/play", headers=user_headers)
    response = client.post(f"/songs/{song_id}/play", headers=user_headers)

    assert response.json() == {"success": True, "play_count": 2}
    with get_db_session() as db:
        song = db.get(Song, song_id)
        assert song.play_count == 2
        assert len(song.play_history) == 2


def test_create_song_after_upload(client, admin_headers):
    with get_db_session() as db:
        artist = Artist(name="Tulus")
        db.add(artist)
        db.flush()
        album = Album(title="Monokrom", artist_id=artist.id)
        db.add(album)
        db.flush()
        artist_id, album_id = artist.id, album.id

    response = client.post(
        "/songs",
        json={
            "title": "Gajah",
            "duration_sec": 243,
            "audio_key": "audio/abc-Gajah.mp3",
            "artist_ids": [str(artist_id)],
            "album_id": str(album_id),
            "genre": "Pop",
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    song = response.json()["song"]
    assert song["audio_key"] == "audio/abc-Gajah.mp3"
    assert song["artists"] == [{"id": str(artist_id), "name": "Tulus", "avatar_url": None}]
    assert song["album"]["title"] == "Monokrom"


def test_create_song_with_unknown_artist_is_404(client, admin_headers):
    response = client.post(
        "/songs",
        json={"title": "X", "duration_sec": 10, "audio_key": "audio/x.mp3", "artist_ids": [str(uuid.uuid4())]},
        headers=admin_headers,
    )

    assert response.status_code == 404
    assert response.json()["error"] == "Artist not found."
    with get_db_session() as db:
        assert db.execute(select(Song)).first() is None


def test_patch_song_replaces_artists_by_id(client, admin_headers, make_song):
    song_id = make_song(artists=("Tulus",))
    with get_db_session() as db:
        raisa = Artist(name="Raisa")
        db.add(raisa)
        db.flush()
        raisa_id = raisa.id

    response = client.patch(
        f"/songs/{song_id}",
        json={"title": "Gajah (Live)", "artists": {"mode": "ids", "artist_ids": [str(raisa_id)]}},
        headers=admin_headers,
    )

    assert response.status_code == 200
    song = response.json()["song"]
    assert song["title"] == "Gajah (Live)"
    assert [a["name"] for a in song["artists"]] == ["Raisa"]


def test_patch_song_replaces_artists_by_name_creating_missing(client, admin_headers, make_song):
    song_id = make_song(artists=("Tulus",))

    response = client.patch(
        f"/songs/{song_id}",
        json={"genre": "Pop", "artists": {"mode": "names", "artist_names": ["Tulus", "Raisa"]}},
        headers=admin_headers,
    )

    song = response.json()["song"]
    assert song["genre"] == "Pop"
    assert [a["name"] for a in song["artists"]] == ["Raisa", "Tulus"]
    with get_db_session() as db:
        assert len(db.execute(select(Artist)).scalars().all()) == 2


def test_patch_song_rejects_unknown_artist_mode(client, admin_headers, make_song):
    song_id = make_song()

    response = client.patch(
        f"/songs/{song_id}",
        json={"artists": {"mode": "spotify", "artist_ids": []}},
        headers=admin_headers,
    )

    assert response.status_code == 400


def test_delete_song_schedules_blob_delete(client, admin_headers, make_song, s3_client):
    song_id = make_song(audio_key="audio/abc-Gajah.mp3")

    response = client.delete(f"/songs/{song_id}", headers=admin_headers)

    assert response.status_code == 200
    s3_client.delete_object.assert_called_once_with(Bucket="beatstream-test", Key="audio/abc-Gajah.mp3")
    with get_db_session() as db:
        assert db.get(Song, song_id) is None
        # the artist stays even without songs
        assert db.execute(select(Artist).where(Artist.name == "Tulus")).first() is not None


def test_delete_song_blob_failure_is_only_logged(client, admin_headers, make_song, s3_client):
    song_id = make_song()
    s3_client.delete_object.side_effect = ClientError({"Error": {"Code": "500"}}, "DeleteObject")

    response = client.delete(f"/songs/{song_id}", headers=admin_headers)

    assert response.status_code == 200
    with get_db_session() as db:
        assert db.get(Song, song_id) is None


def test_generate_lyrics_stores_result(client, admin_headers, make_song):
    song_id = make_song(title="Gajah")
    ai_client = MagicMock()
    ai_client.complete.return_value = '{"lyrics": "la la", "lrc": "[00:01.00]la la", "moods": ["Sad"]}'
    app.dependency_overrides[get_ai_client] = lambda: ai_client

    response = client.post(f"/songs/{song_id}/generate-lyrics", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {"id": str(song_id), "lyrics": "la la", "lyrics_lrc": "[00:01.00]la la", "moods": ["Sad"]}
    with get_db_session() as db:
        song = db.get(Song, song_id)
        assert song.lyrics == "la la"
        assert song.moods == ["Sad"]


def test_generate_lyrics_provider_failure_is_500(client, admin_headers, make_song):
    song_id = make_song()
    ai_client = MagicMock()
    ai_client.complete.return_value = "no idea"
    app.dependency_overrides[get_ai_client] = lambda: ai_client

    response = client.post(f"/songs/{song_id}/generate-lyrics", headers=admin_headers)

    assert response.status_code == 500
    assert response.json() == {"error": "AI response did not contain JSON."}


def test_list_songs_without_storage_configuration(storage_unconfigured, user_headers, make_song):
    make_song(title="Gajah")

    plain = storage_unconfigured.get("/songs", headers=user_headers)
    verified = storage_unconfigured.get("/songs?verify_storage=true", headers=user_headers)

    assert plain.status_code == 200
    assert [s["title"] for s in plain.json()["songs"]] == ["Gajah"]
    assert verified.status_code == 200
    assert verified.json()["songs"][0]["exists_in_storage"] is None


def test_delete_song_without_storage_configuration_removes_row(storage_unconfigured, admin_headers, make_song):
    song_id = make_song()

    response = storage_unconfigured.delete(f"/songs/{song_id}", headers=admin_headers)

    assert response.status_code == 200
    with get_db_session() as db:
        assert db.get(Song, song_id) is None
