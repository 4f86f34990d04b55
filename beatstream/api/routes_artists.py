"""
Artist and album endpoints:
- GET /artists, GET /artists/{id} (session token)
- POST /artists, DELETE /artists/{id} (admin)
- POST /albums (admin), GET /albums/{id} (session token)
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from beatstream.api import catalog
from beatstream.api.auth import TokenIdentity, get_current_identity, require_admin
from beatstream.api.db import db_session_dep
from beatstream.api.errors import ConflictError
from beatstream.api.models import Album, Artist
from beatstream.api.schemas import (
    AlbumCreateRequest,
    AlbumDetail,
    AlbumResponse,
    AlbumSummary,
    ArtistCreateRequest,
    ArtistDetail,
    ArtistListResponse,
    ArtistResponse,
    MessageResponse,
)
from beatstream.api.storage import ObjectStorage, get_optional_storage
from beatstream.api.tasks import delete_blob_quietly

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/artists", tags=["Artists"])
albums_router = APIRouter(prefix="/albums", tags=["Albums"])


@router.get(
    "",
    response_model=ArtistListResponse,
    summary="List artists",
    operation_id="list_artists",
)
def list_artists(
    _identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> ArtistListResponse:
    artists = db.execute(select(Artist).order_by(Artist.name)).scalars().all()
    return ArtistListResponse(artists=[ArtistResponse.model_validate(a) for a in artists])


@router.get(
    "/{artist_id}",
    response_model=ArtistDetail,
    summary="Get an artist",
    description="Artist with albums and songs.",
    operation_id="get_artist",
)
def get_artist(
    artist_id: uuid.UUID,
    _identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> ArtistDetail:
    artist = catalog.get_artist_or_404(db, artist_id)
    return ArtistDetail(
        **ArtistResponse.model_validate(artist).model_dump(),
        albums=[AlbumSummary.model_validate(a) for a in artist.albums],
        songs=[catalog.song_summary(s) for s in artist.songs],
    )


@router.post(
    "",
    response_model=ArtistResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an artist",
    operation_id="create_artist",
)
def create_artist(
    req: ArtistCreateRequest,
    _admin: TokenIdentity = Depends(require_admin),
    db: Session = Depends(db_session_dep),
) -> ArtistResponse:
    name = req.name.strip()
    if db.execute(select(Artist.id).where(Artist.name == name)).first() is not None:
        raise ConflictError("Artist already exists.", details={"name": name})

    artist = Artist(name=name, bio=req.bio, avatar_url=req.avatar_url)
    db.add(artist)
    db.flush()
    return ArtistResponse.model_validate(artist)


@router.delete(
    "/{artist_id}",
    response_model=MessageResponse,
    summary="Delete an artist",
    description=(
        "Deletes the artist and its albums. Songs credited only to this artist are deleted "
        "(audio removed in the background); songs shared with other artists are kept (admin)."
    ),
    operation_id="delete_artist",
)
def delete_artist(
    artist_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    _admin: TokenIdentity = Depends(require_admin),
    db: Session = Depends(db_session_dep),
    storage: Optional[ObjectStorage] = Depends(get_optional_storage),
) -> MessageResponse:
    artist = catalog.get_artist_or_404(db, artist_id)
    for key in catalog.delete_artist(db, artist):
        if storage is None:
            logger.warning("storage_delete_skipped: key=%s", key)
        else:
            background_tasks.add_task(delete_blob_quietly, storage, key)
    return MessageResponse(message="Artist deleted.")


@albums_router.post(
    "",
    response_model=AlbumResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an album",
    operation_id="create_album",
)
def create_album(
    req: AlbumCreateRequest,
    _admin: TokenIdentity = Depends(require_admin),
    db: Session = Depends(db_session_dep),
) -> AlbumResponse:
    artist = catalog.get_artist_or_404(db, req.artist_id)
    album = Album(title=req.title.strip(), artist=artist, release_year=req.release_year, cover_url=req.cover_url)
    db.add(album)
    db.flush()
    return AlbumResponse.model_validate(album)


@albums_router.get(
    "/{album_id}",
    response_model=AlbumDetail,
    summary="Get an album",
    operation_id="get_album",
)
def get_album(
    album_id: uuid.UUID,
    _identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> AlbumDetail:
    album = catalog.get_album_or_404(db, album_id)
    return AlbumDetail(
        **AlbumResponse.model_validate(album).model_dump(),
        songs=[catalog.song_summary(s) for s in album.songs],
    )
