"""
Song endpoints (session token required; admin where noted):
- GET /songs (filters, sorting, optional storage verification)
- GET /songs/{id}
- POST /songs/{id}/play
- POST /songs/{id}/stream-url (presigned GET, 5 minutes)
- POST /songs/upload-url (admin, presigned PUT, 10 minutes)
- POST /songs (admin, manual create after an upload)
- PATCH /songs/{id} (admin)
- DELETE /songs/{id} (admin)
- POST /songs/{id}/generate-lyrics (admin)

Audio bytes never pass through this service; clients use the presigned URLs.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import desc, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from beatstream.api import catalog
from beatstream.api.ai import OpenRouterClient, generate_lyrics, get_ai_client, lyrics_model
from beatstream.api.auth import TokenIdentity, get_current_identity, require_admin
from beatstream.api.db import db_session_dep
from beatstream.api.models import Artist, Song
from beatstream.api.schemas import (
    ArtistsById,
    LyricsResponse,
    MessageResponse,
    PlayResponse,
    SongCreateRequest,
    SongEnvelope,
    SongListItem,
    SongListResponse,
    SongUpdateRequest,
    StreamUrlResponse,
    UploadUrlRequest,
    UploadUrlResponse,
)
from beatstream.api.storage import (
    DOWNLOAD_URL_EXPIRES_SECONDS,
    UPLOAD_URL_EXPIRES_SECONDS,
    ObjectStorage,
    build_object_key,
    get_optional_storage,
    get_storage,
)
from beatstream.api.tasks import delete_blob_quietly, record_play_history

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/songs", tags=["Songs"])


def _song_query():
    return select(Song).options(selectinload(Song.artists), selectinload(Song.album))


@router.get(
    "",
    response_model=SongListResponse,
    summary="List songs",
    description="Lists songs with optional genre/mood/artist/text filters. Newest first by default.",
    operation_id="list_songs",
)
def list_songs(
    genre: Optional[str] = Query(None),
    mood: Optional[str] = Query(None),
    artist: Optional[uuid.UUID] = Query(None, description="Artist id."),
    q: Optional[str] = Query(None, description="Matches title or artist name, case-insensitive."),
    sort: Literal["latest", "plays", "random"] = Query("latest"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    verify_storage: bool = Query(False, description="Head-check every returned song's audio object."),
    _identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
    storage: Optional[ObjectStorage] = Depends(get_optional_storage),
) -> SongListResponse:
    stmt = _song_query()
    if genre:
        stmt = stmt.where(func.lower(Song.genre) == genre.lower())
    if artist:
        stmt = stmt.where(Song.artists.any(Artist.id == artist))
    if q:
        pattern = f"%{q.lower()}%"
        stmt = stmt.where(
            or_(func.lower(Song.title).like(pattern), Song.artists.any(func.lower(Artist.name).like(pattern)))
        )

    if sort == "plays":
        stmt = stmt.order_by(desc(Song.play_count), desc(Song.created_at))
    elif sort == "random":
        stmt = stmt.order_by(func.random())
    else:
        stmt = stmt.order_by(desc(Song.created_at))

    if mood:
        # moods is a JSON column, filtered in Python.
        wanted = mood.lower()
        songs = [
            s for s in db.execute(stmt).scalars().all() if any(m.lower() == wanted for m in s.moods or [])
        ][offset : offset + limit]
    else:
        songs = db.execute(stmt.offset(offset).limit(limit)).scalars().all()

    items: List[SongListItem] = []
    for song in songs:
        exists = storage.exists(song.audio_key) if verify_storage and storage is not None else None
        items.append(SongListItem(**catalog.song_summary(song).model_dump(), exists_in_storage=exists))
    return SongListResponse(songs=items)


@router.post(
    "/upload-url",
    response_model=UploadUrlResponse,
    summary="Create an upload URL",
    description="Presigned PUT URL for uploading audio or a cover image directly to storage (admin).",
    operation_id="create_upload_url",
)
def create_upload_url(
    req: UploadUrlRequest,
    _admin: TokenIdentity = Depends(require_admin),
    storage: ObjectStorage = Depends(get_storage),
) -> UploadUrlResponse:
    stem, extension = os.path.splitext(req.file_name)
    key = build_object_key(req.folder, stem, extension)
    url = storage.presign_upload(key, req.file_type, UPLOAD_URL_EXPIRES_SECONDS)
    return UploadUrlResponse(
        upload_url=url,
        object_key=key,
        public_url=storage.public_url(key) if req.folder == "covers" else None,
        expires_in=UPLOAD_URL_EXPIRES_SECONDS,
    )


@router.post(
    "",
    response_model=SongEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create a song",
    description="Registers a song whose audio was uploaded through an upload URL (admin).",
    operation_id="create_song",
)
def create_song(
    req: SongCreateRequest,
    _admin: TokenIdentity = Depends(require_admin),
    db: Session = Depends(db_session_dep),
) -> SongEnvelope:
    artists = catalog.resolve_artists_by_ids(db, req.artist_ids)
    if req.album_id is not None:
        catalog.get_album_or_404(db, req.album_id)

    song = Song(
        title=req.title.strip(),
        duration_sec=req.duration_sec,
        audio_key=req.audio_key,
        cover_url=req.cover_url,
        track_number=req.track_number,
        album_id=req.album_id,
        genre=req.genre,
        artists=artists,
    )
    db.add(song)
    db.flush()
    logger.info("song_created: id=%s key=%s", song.id, song.audio_key)
    return SongEnvelope(song=catalog.song_detail(song))


@router.get(
    "/{song_id}",
    response_model=SongEnvelope,
    summary="Get a song",
    operation_id="get_song",
)
def get_song(
    song_id: uuid.UUID,
    _identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> SongEnvelope:
    return SongEnvelope(song=catalog.song_detail(catalog.get_song_or_404(db, song_id)))


@router.post(
    "/{song_id}/play",
    response_model=PlayResponse,
    summary="Count a play",
    description="Increments the play count; the play-history entry is written in the background.",
    operation_id="play_song",
)
def play_song(
    song_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> PlayResponse:
    song = catalog.get_song_or_404(db, song_id)
    db.execute(update(Song).where(Song.id == song.id).values(play_count=Song.play_count + 1))
    db.refresh(song)

    background_tasks.add_task(record_play_history, identity.user_id, song.id)
    return PlayResponse(success=True, play_count=song.play_count)


@router.post(
    "/{song_id}/stream-url",
    response_model=StreamUrlResponse,
    summary="Create a streaming URL",
    description="Presigned GET URL for the song's audio, valid for 5 minutes.",
    operation_id="create_stream_url",
)
def create_stream_url(
    song_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
    storage: ObjectStorage = Depends(get_storage),
) -> StreamUrlResponse:
    song = catalog.get_song_or_404(db, song_id)
    url = storage.presign_download(song.audio_key, DOWNLOAD_URL_EXPIRES_SECONDS)

    background_tasks.add_task(record_play_history, identity.user_id, song.id)
    logger.info("stream_url_issued: song_id=%s user_id=%s", song.id, identity.user_id)
    return StreamUrlResponse(url=url, expires_in=DOWNLOAD_URL_EXPIRES_SECONDS, song_id=song.id, title=song.title)


@router.post(
    "/{song_id}/generate-lyrics",
    response_model=LyricsResponse,
    summary="Generate lyrics",
    description="Asks the AI provider for lyrics, LRC and mood tags and stores them on the song (admin).",
    operation_id="generate_song_lyrics",
)
def generate_song_lyrics(
    song_id: uuid.UUID,
    _admin: TokenIdentity = Depends(require_admin),
    db: Session = Depends(db_session_dep),
    ai_client: OpenRouterClient = Depends(get_ai_client),
) -> LyricsResponse:
    song = catalog.get_song_or_404(db, song_id)
    result = generate_lyrics(ai_client, song.title, [a.name for a in song.artists], lyrics_model())

    song.lyrics = result.lyrics
    song.lyrics_lrc = result.lrc
    if result.moods:
        song.moods = result.moods
    db.flush()
    logger.info("lyrics_generated: song_id=%s moods=%s", song.id, song.moods)
    return LyricsResponse(id=song.id, lyrics=song.lyrics, lyrics_lrc=song.lyrics_lrc, moods=song.moods)


@router.patch(
    "/{song_id}",
    response_model=SongEnvelope,
    summary="Update a song",
    description=(
        "Partial update (admin). Artists are replaced either by id "
        '({"mode": "ids", "artist_ids": [...]}) or by name ({"mode": "names", "artist_names": [...]}).'
    ),
    operation_id="update_song",
)
def update_song(
    song_id: uuid.UUID,
    req: SongUpdateRequest,
    _admin: TokenIdentity = Depends(require_admin),
    db: Session = Depends(db_session_dep),
) -> SongEnvelope:
    song = catalog.get_song_or_404(db, song_id)
    changes = req.model_dump(exclude_unset=True, exclude={"artists"})
    for required in ("title", "duration_sec", "moods"):
        if required in changes and changes[required] is None:
            del changes[required]

    if changes.get("album_id") is not None:
        catalog.get_album_or_404(db, changes["album_id"])
    for field, value in changes.items():
        setattr(song, field, value)

    if req.artists is not None:
        if isinstance(req.artists, ArtistsById):
            song.artists = catalog.resolve_artists_by_ids(db, req.artists.artist_ids)
        else:
            song.artists = catalog.resolve_artists_by_names(db, req.artists.artist_names)

    db.flush()
    db.refresh(song)
    return SongEnvelope(song=catalog.song_detail(song))


@router.delete(
    "/{song_id}",
    response_model=MessageResponse,
    summary="Delete a song",
    description="Deletes the song row; the audio object is removed in the background (admin).",
    operation_id="delete_song",
)
def delete_song(
    song_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    _admin: TokenIdentity = Depends(require_admin),
    db: Session = Depends(db_session_dep),
    storage: Optional[ObjectStorage] = Depends(get_optional_storage),
) -> MessageResponse:
    song = catalog.get_song_or_404(db, song_id)
    key = song.audio_key
    db.delete(song)
    db.flush()

    if storage is None:
        logger.warning("storage_delete_skipped: key=%s", key)
    else:
        background_tasks.add_task(delete_blob_quietly, storage, key)
    logger.info("song_deleted: id=%s key=%s", song_id, key)
    return MessageResponse(message="Song deleted.")
