"""
Pydantic models (request/response shapes) for API endpoints.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class _OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ── Auth ──────────────────────────────────────────────────────────────────────


class LoginRequest(BaseModel):
    id_token: str = Field(..., min_length=1, description="Google ID token from Google Sign-In.")


class UserResponse(_OrmModel):
    id: uuid.UUID
    email: EmailStr
    name: str
    avatar_url: Optional[str] = None
    role: str
    created_at: datetime


class LoginResponse(BaseModel):
    token: str = Field(..., description="Session JWT.")
    token_type: str = Field("bearer", description="Token type for Authorization header.")
    user: UserResponse


class MeResponse(UserResponse):
    playlist_count: int = 0
    play_count: int = 0


# ── Catalog ───────────────────────────────────────────────────────────────────


class ArtistSummary(_OrmModel):
    id: uuid.UUID
    name: str
    avatar_url: Optional[str] = None


class AlbumSummary(_OrmModel):
    id: uuid.UUID
    title: str
    cover_url: Optional[str] = None


class ArtistResponse(ArtistSummary):
    bio: Optional[str] = None
    created_at: datetime


class AlbumResponse(AlbumSummary):
    release_year: Optional[int] = None
    artist: ArtistSummary
    created_at: datetime


class SongSummary(BaseModel):
    id: uuid.UUID
    title: str
    duration_sec: int
    duration: str = Field(..., description="Human readable duration, e.g. 4:03.")
    cover_url: Optional[str] = None
    genre: Optional[str] = None
    artists: List[ArtistSummary] = []
    album: Optional[AlbumSummary] = None


class SongListItem(SongSummary):
    exists_in_storage: Optional[bool] = Field(
        None, description="Head-object check result when verify_storage=true; null when unchecked or unknown."
    )


class SongListResponse(BaseModel):
    songs: List[SongListItem]


class SongDetail(SongSummary):
    audio_key: str
    track_number: Optional[int] = None
    lyrics: Optional[str] = None
    lyrics_lrc: Optional[str] = None
    moods: List[str] = []
    play_count: int = 0
    created_at: datetime


class SongEnvelope(BaseModel):
    song: SongDetail


class ArtistDetail(ArtistResponse):
    albums: List[AlbumSummary] = []
    songs: List[SongSummary] = []


class ArtistListResponse(BaseModel):
    artists: List[ArtistResponse]


class AlbumDetail(AlbumResponse):
    songs: List[SongSummary] = []


class ArtistCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    bio: Optional[str] = None
    avatar_url: Optional[str] = None


class AlbumCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    artist_id: uuid.UUID
    release_year: Optional[int] = None
    cover_url: Optional[str] = None


class SongCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    duration_sec: int = Field(..., gt=0)
    audio_key: str = Field(..., min_length=1)
    artist_ids: List[uuid.UUID] = Field(..., min_length=1)
    cover_url: Optional[str] = None
    track_number: Optional[int] = None
    album_id: Optional[uuid.UUID] = None
    genre: Optional[str] = None


class ArtistsById(BaseModel):
    """Replace the song's artists with existing artist rows."""

    mode: Literal["ids"]
    artist_ids: List[uuid.UUID] = Field(..., min_length=1)


class ArtistsByName(BaseModel):
    """Replace the song's artists by name, creating artists that don't exist yet."""

    mode: Literal["names"]
    artist_names: List[Annotated[str, Field(min_length=1)]] = Field(..., min_length=1)


ArtistAssignment = Annotated[Union[ArtistsById, ArtistsByName], Field(discriminator="mode")]


class SongUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    duration_sec: Optional[int] = Field(None, ge=0)
    cover_url: Optional[str] = None
    genre: Optional[str] = None
    album_id: Optional[uuid.UUID] = None
    lyrics: Optional[str] = None
    lyrics_lrc: Optional[str] = None
    moods: Optional[List[str]] = None
    artists: Optional[ArtistAssignment] = None


class PlayResponse(BaseModel):
    success: bool = True
    play_count: int


class MessageResponse(BaseModel):
    message: str


class LyricsResponse(BaseModel):
    id: uuid.UUID
    lyrics: Optional[str] = None
    lyrics_lrc: Optional[str] = None
    moods: List[str] = []


# ── Signed URLs ───────────────────────────────────────────────────────────────


class StreamUrlResponse(BaseModel):
    url: str
    expires_in: int
    song_id: uuid.UUID
    title: str


class UploadUrlRequest(BaseModel):
    file_name: str = Field(..., min_length=1)
    file_type: str = Field(..., min_length=1, description="Content type the client will PUT.")
    folder: Literal["audio", "covers"] = "audio"


class UploadUrlResponse(BaseModel):
    upload_url: str
    object_key: str
    public_url: Optional[str] = None
    expires_in: int


# ── Ingestion ─────────────────────────────────────────────────────────────────


class SearchResult(BaseModel):
    video_id: str
    url: Optional[str] = None
    title: str
    thumbnail: Optional[str] = None
    duration: Optional[str] = None
    author: Optional[str] = None


class SearchResponse(BaseModel):
    videos: List[SearchResult]


class YoutubeSourceRequest(BaseModel):
    youtube_url: str = Field(..., min_length=1)


class SpotifySourceRequest(BaseModel):
    spotify_url: str = Field(..., min_length=1)


class _IngestOptions(BaseModel):
    artist_ids: Optional[List[uuid.UUID]] = None
    album_id: Optional[uuid.UUID] = None
    genre: Optional[str] = None
    title: Optional[str] = Field(None, description="Explicit title; skips cleanup together with artist_names.")
    artist_names: Optional[List[str]] = None


class YoutubeDownloadRequest(YoutubeSourceRequest, _IngestOptions):
    pass


class SpotifyDownloadRequest(SpotifySourceRequest, _IngestOptions):
    pass


class EnrichedArtist(BaseModel):
    name: str
    avatar_url: Optional[str] = None
    genres: List[str] = []


class PreviewResponse(BaseModel):
    raw_title: str
    title: str
    artists: List[EnrichedArtist]
    thumbnail: Optional[str] = None
    duration: Optional[Any] = None


# ── Playlists ─────────────────────────────────────────────────────────────────


class PlaylistCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class PlaylistUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    cover_url: Optional[str] = None


class PlaylistResponse(_OrmModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    cover_url: Optional[str] = None
    user_id: uuid.UUID
    created_at: datetime


class PlaylistEnvelope(BaseModel):
    playlist: PlaylistResponse


class MyPlaylist(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    cover_url: Optional[str] = None
    total_songs: int
    has_song: Optional[bool] = None


class MyPlaylistsResponse(BaseModel):
    playlists: List[MyPlaylist]


class PlaylistOwner(_OrmModel):
    id: uuid.UUID
    name: str


class PlaylistSong(BaseModel):
    position: int
    added_at: datetime
    song: SongSummary


class PlaylistDetail(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    cover_url: Optional[str] = None
    owner: PlaylistOwner
    total_songs: int
    songs: List[PlaylistSong]


class PlaylistItemRequest(BaseModel):
    song_id: uuid.UUID


class PlaylistItemResponse(_OrmModel):
    id: uuid.UUID
    playlist_id: uuid.UUID
    song_id: uuid.UUID
    position: int
    added_at: datetime


class PlaylistItemEnvelope(BaseModel):
    item: PlaylistItemResponse
