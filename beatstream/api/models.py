"""
SQLAlchemy models for the streaming catalog.

Tables: users, artists, albums, songs, song_artists, playlists, playlist_items, play_history.
Foreign keys carry the delete rules (ondelete=...) so cascades hold for bulk deletes too;
the relationships mirror them with passive_deletes.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


song_artists = Table(
    "song_artists",
    Base.metadata,
    Column("artist_id", Uuid, ForeignKey("artists.id", ondelete="CASCADE"), primary_key=True),
    Column("song_id", Uuid, ForeignKey("songs.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class User(Base):
    """Account created on first Google sign-in; refreshed on every login."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    google_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=Role.USER.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    playlists: Mapped[List["Playlist"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    play_history: Mapped[List["PlayHistory"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )


class Artist(Base):
    __tablename__ = "artists"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    albums: Mapped[List["Album"]] = relationship(
        back_populates="artist", cascade="all, delete-orphan", passive_deletes=True
    )
    songs: Mapped[List["Song"]] = relationship(
        secondary=song_artists, back_populates="artists", passive_deletes=True
    )


class Album(Base):
    __tablename__ = "albums"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    release_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cover_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    artist_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("artists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    artist: Mapped[Artist] = relationship(back_populates="albums")
    songs: Mapped[List["Song"]] = relationship(back_populates="album", passive_deletes=True)


class Song(Base):
    """Song metadata; the audio itself lives in object storage under `audio_key`."""

    __tablename__ = "songs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    duration_sec: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    audio_key: Mapped[str] = mapped_column(Text, nullable=False)
    cover_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    track_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    genre: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    lyrics: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lyrics_lrc: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    moods: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    play_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    album_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("albums.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    artists: Mapped[List[Artist]] = relationship(
        secondary=song_artists, back_populates="songs", order_by=Artist.name
    )
    album: Mapped[Optional[Album]] = relationship(back_populates="songs")
    playlist_items: Mapped[List["PlaylistItem"]] = relationship(
        back_populates="song", cascade="all, delete-orphan", passive_deletes=True
    )
    play_history: Mapped[List["PlayHistory"]] = relationship(
        back_populates="song", cascade="all, delete-orphan", passive_deletes=True
    )


class Playlist(Base):
    __tablename__ = "playlists"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cover_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    user: Mapped[User] = relationship(back_populates="playlists")
    items: Mapped[List["PlaylistItem"]] = relationship(
        back_populates="playlist",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PlaylistItem.position",
    )


class PlaylistItem(Base):
    """Song membership in a playlist; `position` is an ordering hint, gaps are allowed."""

    __tablename__ = "playlist_items"
    __table_args__ = (
        UniqueConstraint("playlist_id", "song_id", name="uq_playlist_items_playlist_song"),
        Index("ix_playlist_items_playlist_position", "playlist_id", "position"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    playlist_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False
    )
    song_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("songs.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    playlist: Mapped[Playlist] = relationship(back_populates="items")
    song: Mapped[Song] = relationship(back_populates="playlist_items")


class PlayHistory(Base):
    __tablename__ = "play_history"
    __table_args__ = (Index("ix_play_history_user_played_at", "user_id", "played_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    song_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("songs.id", ondelete="CASCADE"), nullable=False)
    played_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user: Mapped[User] = relationship(back_populates="play_history")
    song: Mapped[Song] = relationship(back_populates="play_history")
