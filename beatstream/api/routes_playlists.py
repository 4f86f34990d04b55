"""
Playlist endpoints (session token required):
- POST /playlists
- GET /playlists/my
- GET /playlists/{id}
- PATCH /playlists/{id}, DELETE /playlists/{id} (owner only)
- POST /playlists/{id}/songs, DELETE /playlists/{id}/songs/{song_id} (owner only)
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session, selectinload

from beatstream.api import catalog
from beatstream.api.auth import TokenIdentity, get_current_identity
from beatstream.api.db import db_session_dep
from beatstream.api.errors import AuthorizationError, ConflictError, NotFoundError
from beatstream.api.models import Playlist, PlaylistItem, Song
from beatstream.api.schemas import (
    MessageResponse,
    MyPlaylist,
    MyPlaylistsResponse,
    PlaylistCreateRequest,
    PlaylistDetail,
    PlaylistEnvelope,
    PlaylistItemEnvelope,
    PlaylistItemRequest,
    PlaylistItemResponse,
    PlaylistOwner,
    PlaylistResponse,
    PlaylistSong,
    PlaylistUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/playlists", tags=["Playlists"])


def _get_playlist_or_404(db: Session, playlist_id: uuid.UUID) -> Playlist:
    playlist = db.get(Playlist, playlist_id)
    if playlist is None:
        raise NotFoundError("Playlist not found.")
    return playlist


def _get_owned_playlist(db: Session, playlist_id: uuid.UUID, identity: TokenIdentity) -> Playlist:
    """404 when missing, 403 when it belongs to someone else."""
    playlist = _get_playlist_or_404(db, playlist_id)
    if playlist.user_id != identity.user_id:
        raise AuthorizationError("You do not own this playlist.")
    return playlist


@router.post(
    "",
    response_model=PlaylistEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create a playlist",
    operation_id="create_playlist",
)
def create_playlist(
    req: PlaylistCreateRequest,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> PlaylistEnvelope:
    playlist = Playlist(name=req.name.strip(), description=req.description, user_id=identity.user_id)
    db.add(playlist)
    db.flush()
    return PlaylistEnvelope(playlist=PlaylistResponse.model_validate(playlist))


@router.get(
    "/my",
    response_model=MyPlaylistsResponse,
    summary="My playlists",
    description="The caller's playlists with song counts. With song_id, each entry says whether it holds that song.",
    operation_id="list_my_playlists",
)
def list_my_playlists(
    song_id: Optional[uuid.UUID] = Query(None),
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> MyPlaylistsResponse:
    playlists = (
        db.execute(
            select(Playlist)
            .where(Playlist.user_id == identity.user_id)
            .options(selectinload(Playlist.items))
            .order_by(desc(Playlist.created_at))
        )
        .scalars()
        .all()
    )
    return MyPlaylistsResponse(
        playlists=[
            MyPlaylist(
                id=p.id,
                name=p.name,
                description=p.description,
                cover_url=p.cover_url,
                total_songs=len(p.items),
                has_song=any(item.song_id == song_id for item in p.items) if song_id else None,
            )
            for p in playlists
        ]
    )


@router.get(
    "/{playlist_id}",
    response_model=PlaylistDetail,
    summary="Get a playlist",
    description="Playlist with its songs in position order.",
    operation_id="get_playlist",
)
def get_playlist(
    playlist_id: uuid.UUID,
    _identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> PlaylistDetail:
    playlist = db.execute(
        select(Playlist)
        .where(Playlist.id == playlist_id)
        .options(
            selectinload(Playlist.user),
            selectinload(Playlist.items).selectinload(PlaylistItem.song).selectinload(Song.artists),
            selectinload(Playlist.items).selectinload(PlaylistItem.song).selectinload(Song.album),
        )
    ).scalar_one_or_none()
    if playlist is None:
        raise NotFoundError("Playlist not found.")

    return PlaylistDetail(
        id=playlist.id,
        name=playlist.name,
        description=playlist.description,
        cover_url=playlist.cover_url,
        owner=PlaylistOwner.model_validate(playlist.user),
        total_songs=len(playlist.items),
        songs=[
            PlaylistSong(position=item.position, added_at=item.added_at, song=catalog.song_summary(item.song))
            for item in playlist.items
        ],
    )


@router.patch(
    "/{playlist_id}",
    response_model=PlaylistEnvelope,
    summary="Update a playlist",
    operation_id="update_playlist",
)
def update_playlist(
    playlist_id: uuid.UUID,
    req: PlaylistUpdateRequest,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> PlaylistEnvelope:
    playlist = _get_owned_playlist(db, playlist_id, identity)
    for field, value in req.model_dump(exclude_unset=True).items():
        if field == "name" and value is None:
            continue
        setattr(playlist, field, value)
    db.flush()
    return PlaylistEnvelope(playlist=PlaylistResponse.model_validate(playlist))


@router.delete(
    "/{playlist_id}",
    response_model=MessageResponse,
    summary="Delete a playlist",
    operation_id="delete_playlist",
)
def delete_playlist(
    playlist_id: uuid.UUID,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> MessageResponse:
    playlist = _get_owned_playlist(db, playlist_id, identity)
    db.delete(playlist)
    db.flush()
    logger.info("playlist_deleted: id=%s user_id=%s", playlist_id, identity.user_id)
    return MessageResponse(message="Playlist deleted.")


@router.post(
    "/{playlist_id}/songs",
    response_model=PlaylistItemEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Add a song to a playlist",
    description="Appends the song at the end (max position + 1). A song can appear once per playlist.",
    operation_id="add_playlist_song",
)
def add_playlist_song(
    playlist_id: uuid.UUID,
    req: PlaylistItemRequest,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> PlaylistItemEnvelope:
    playlist = _get_owned_playlist(db, playlist_id, identity)
    catalog.get_song_or_404(db, req.song_id)

    existing = db.execute(
        select(PlaylistItem.id).where(PlaylistItem.playlist_id == playlist.id, PlaylistItem.song_id == req.song_id)
    ).first()
    if existing is not None:
        raise ConflictError("Song is already in this playlist.")

    max_position = db.scalar(
        select(func.coalesce(func.max(PlaylistItem.position), 0)).where(PlaylistItem.playlist_id == playlist.id)
    )
    item = PlaylistItem(playlist_id=playlist.id, song_id=req.song_id, position=(max_position or 0) + 1)
    db.add(item)
    db.flush()
    return PlaylistItemEnvelope(item=PlaylistItemResponse.model_validate(item))


@router.delete(
    "/{playlist_id}/songs/{song_id}",
    response_model=MessageResponse,
    summary="Remove a song from a playlist",
    operation_id="remove_playlist_song",
)
def remove_playlist_song(
    playlist_id: uuid.UUID,
    song_id: uuid.UUID,
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> MessageResponse:
    playlist = _get_owned_playlist(db, playlist_id, identity)
    item = db.execute(
        select(PlaylistItem).where(PlaylistItem.playlist_id == playlist.id, PlaylistItem.song_id == song_id)
    ).scalar_one_or_none()
    if item is None:
        raise NotFoundError("Song is not in this playlist.")

    db.delete(item)
    db.flush()
    return MessageResponse(message="Song removed from playlist.")
