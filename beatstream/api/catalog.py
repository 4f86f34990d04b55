"""
Catalog queries and helpers shared by the routers and the ingestion pipeline.
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from beatstream.api.enrichment import ArtistEnrichment
from beatstream.api.errors import NotFoundError
from beatstream.api.models import Album, Artist, Song, song_artists
from beatstream.api.schemas import AlbumSummary, ArtistSummary, SongDetail, SongSummary

logger = logging.getLogger(__name__)

PLACEHOLDER_ARTIST_NAME = "Unknown Artist"


# PUBLIC_INTERFACE
def format_duration(seconds: Optional[int]) -> str:
    """243 -> '4:03'."""
    seconds = max(int(seconds or 0), 0)
    return f"{seconds // 60}:{seconds % 60:02d}"


def _song_fields(song: Song) -> dict:
    return {
        "id": song.id,
        "title": song.title,
        "duration_sec": song.duration_sec,
        "duration": format_duration(song.duration_sec),
        "cover_url": song.cover_url,
        "genre": song.genre,
        "artists": [ArtistSummary.model_validate(a) for a in song.artists],
        "album": AlbumSummary.model_validate(song.album) if song.album else None,
    }


# PUBLIC_INTERFACE
def song_summary(song: Song) -> SongSummary:
    return SongSummary(**_song_fields(song))


# PUBLIC_INTERFACE
def song_detail(song: Song) -> SongDetail:
    return SongDetail(
        **_song_fields(song),
        audio_key=song.audio_key,
        track_number=song.track_number,
        lyrics=song.lyrics,
        lyrics_lrc=song.lyrics_lrc,
        moods=list(song.moods or []),
        play_count=song.play_count,
        created_at=song.created_at,
    )


# PUBLIC_INTERFACE
def get_song_or_404(db: Session, song_id: uuid.UUID) -> Song:
    song = db.get(Song, song_id)
    if song is None:
        raise NotFoundError("Song not found.")
    return song


# PUBLIC_INTERFACE
def get_artist_or_404(db: Session, artist_id: uuid.UUID) -> Artist:
    artist = db.get(Artist, artist_id)
    if artist is None:
        raise NotFoundError("Artist not found.")
    return artist


# PUBLIC_INTERFACE
def get_album_or_404(db: Session, album_id: uuid.UUID) -> Album:
    album = db.get(Album, album_id)
    if album is None:
        raise NotFoundError("Album not found.")
    return album


def _artist_by_name(db: Session, name: str) -> Optional[Artist]:
    return db.execute(select(Artist).where(Artist.name == name)).scalar_one_or_none()


# PUBLIC_INTERFACE
def resolve_artist_by_name(db: Session, name: str, enrichment: Optional[ArtistEnrichment] = None) -> Artist:
    """
    Return the artist called `name`, creating it when absent.

    Avatar and bio from `enrichment` are only applied to newly created artists.
    A concurrent insert of the same name surfaces as an IntegrityError at flush
    (rendered as 409 by the session dependency).
    """
    name = name.strip()
    artist = _artist_by_name(db, name)
    if artist is not None:
        return artist

    artist = Artist(
        name=name,
        avatar_url=enrichment.avatar_url if enrichment else None,
        bio=enrichment.bio if enrichment else None,
    )
    db.add(artist)
    db.flush()
    logger.info("artist_created: id=%s name=%r", artist.id, name)
    return artist


def _placeholder_artist(db: Session, artist_id: uuid.UUID) -> Artist:
    name = PLACEHOLDER_ARTIST_NAME
    if _artist_by_name(db, name) is not None:
        name = f"{PLACEHOLDER_ARTIST_NAME} ({artist_id.hex[:8]})"
    artist = Artist(id=artist_id, name=name)
    db.add(artist)
    db.flush()
    logger.info("artist_placeholder_created: id=%s name=%r", artist_id, name)
    return artist


# PUBLIC_INTERFACE
def resolve_artists_by_ids(
    db: Session, artist_ids: Iterable[uuid.UUID], create_placeholders: bool = False
) -> List[Artist]:
    """
    Load artists by id, keeping the given order and dropping duplicates.

    Unknown ids raise NotFoundError, or become placeholder artists carrying
    that id when `create_placeholders` is set (ingestion only).
    """
    artists: List[Artist] = []
    seen = set()
    for artist_id in artist_ids:
        if artist_id in seen:
            continue
        seen.add(artist_id)

        artist = db.get(Artist, artist_id)
        if artist is None:
            if not create_placeholders:
                raise NotFoundError("Artist not found.", details={"artist_id": str(artist_id)})
            artist = _placeholder_artist(db, artist_id)
        artists.append(artist)
    return artists


# PUBLIC_INTERFACE
def resolve_artists_by_names(
    db: Session, names: Iterable[str], enrichments: Optional[Iterable[ArtistEnrichment]] = None
) -> List[Artist]:
    """Resolve-or-create each name; blank names and repeats are skipped."""
    names = list(names)
    enrichment_list = list(enrichments) if enrichments is not None else [None] * len(names)

    artists: List[Artist] = []
    for name, enrichment in zip(names, enrichment_list):
        if not name or not name.strip():
            continue
        artist = resolve_artist_by_name(db, name, enrichment)
        if all(existing.id != artist.id for existing in artists):
            artists.append(artist)
    return artists


# PUBLIC_INTERFACE
def delete_artist(db: Session, artist: Artist) -> List[str]:
    """
    Delete an artist with its albums and memberships.

    Songs credited to this artist alone are deleted too; songs with other
    artists survive and only lose the association.

    Returns:
        Audio keys of the deleted songs, for blob cleanup.
    """
    credited = select(song_artists.c.song_id).where(song_artists.c.artist_id == artist.id)
    songs = db.execute(select(Song).where(Song.id.in_(credited))).scalars().all()
    orphaned = [song for song in songs if len(song.artists) == 1]

    audio_keys = [song.audio_key for song in orphaned]
    for song in orphaned:
        db.delete(song)
    db.flush()

    db.delete(artist)
    db.flush()
    logger.info(
        "artist_deleted: id=%s songs_deleted=%s songs_kept=%s",
        artist.id,
        len(orphaned),
        len(songs) - len(orphaned),
    )
    return audio_keys
