"""
Track ingestion: turn a YouTube or Spotify link into a stored Song.

Steps, in order:
1. resolve the link through the downloader API
2. decide title/artists (explicit values, Spotify credits, or cleanup)
3. resolve artists (by id, or enrich + resolve-or-create by name)
4. fetch the audio bytes
5. store the blob under audio/<token>-<title>.mp3
6. insert the Song row

Rows are written in the caller's request session, so any failure up to and
including step 5 leaves no rows behind. A failure at step 6 orphans the blob.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from beatstream.api import catalog
from beatstream.api.ai import cleanup_model, get_ai_client
from beatstream.api.downloader import RETRY_ATTEMPTS, DownloaderClient, ResolvedSource, get_downloader
from beatstream.api.enrichment import SpotifyEnrichmentClient, get_enrichment_client
from beatstream.api.metadata import CleanMetadata, MetadataCleaner
from beatstream.api.models import Artist, Song
from beatstream.api.schemas import (
    EnrichedArtist,
    PreviewResponse,
    SpotifyDownloadRequest,
    YoutubeDownloadRequest,
)
from beatstream.api.storage import ObjectStorage, build_object_key, get_storage

logger = logging.getLogger(__name__)

_AUDIO_CONTENT_TYPE = "audio/mpeg"


class IngestionPipeline:
    def __init__(
        self,
        downloader: DownloaderClient,
        cleaner: MetadataCleaner,
        enrichment: SpotifyEnrichmentClient,
        storage: ObjectStorage,
    ) -> None:
        self.downloader = downloader
        self.cleaner = cleaner
        self.enrichment = enrichment
        self.storage = storage

    # ── previews ─────────────────────────────────────────────────────────────

    def preview_youtube(self, youtube_url: str) -> PreviewResponse:
        return self._preview(self.downloader.resolve_youtube(youtube_url))

    def preview_spotify(self, spotify_url: str) -> PreviewResponse:
        return self._preview(self.downloader.resolve_spotify(spotify_url))

    def _preview(self, source: ResolvedSource) -> PreviewResponse:
        meta = self._metadata(source)
        enrichments = self.enrichment.enrich_many(meta.artists)
        return PreviewResponse(
            raw_title=source.display_title,
            title=meta.title,
            artists=[
                EnrichedArtist(name=name, avatar_url=e.avatar_url, genres=e.genres)
                for name, e in zip(meta.artists, enrichments)
            ],
            thumbnail=source.thumbnail,
            duration=source.duration,
        )

    # ── ingestion ────────────────────────────────────────────────────────────

    def ingest_youtube(self, db: Session, req: YoutubeDownloadRequest) -> Song:
        source = self.downloader.resolve_youtube(req.youtube_url)
        return self._ingest(db, source, req, fetch_attempts=1)

    def ingest_spotify(self, db: Session, req: SpotifyDownloadRequest) -> Song:
        source = self.downloader.resolve_spotify(req.spotify_url)
        return self._ingest(db, source, req, fetch_attempts=RETRY_ATTEMPTS)

    def _metadata(
        self,
        source: ResolvedSource,
        title: Optional[str] = None,
        artist_names: Optional[List[str]] = None,
    ) -> CleanMetadata:
        title = (title or "").strip() or None
        artist_names = [n.strip() for n in artist_names or [] if n.strip()] or None

        if title and artist_names:
            return CleanMetadata(title=title, artists=artist_names)

        if source.artists:
            derived = CleanMetadata(title=source.raw_title, artists=source.artists)
        else:
            derived = self.cleaner.clean(source.raw_title)
        return CleanMetadata(title=title or derived.title, artists=artist_names or derived.artists)

    def _resolve_artists(self, db: Session, req, meta: CleanMetadata) -> List[Artist]:
        if req.artist_ids:
            return catalog.resolve_artists_by_ids(db, req.artist_ids, create_placeholders=True)
        enrichments = self.enrichment.enrich_many(meta.artists)
        return catalog.resolve_artists_by_names(db, meta.artists, enrichments)

    def _ingest(self, db: Session, source: ResolvedSource, req, fetch_attempts: int) -> Song:
        meta = self._metadata(source, req.title, req.artist_names)
        logger.info("ingest_metadata: title=%r artists=%r", meta.title, meta.artists)

        if req.album_id is not None:
            catalog.get_album_or_404(db, req.album_id)
        artists = self._resolve_artists(db, req, meta)

        audio = self.downloader.fetch_binary(source.download_url, attempts=fetch_attempts)

        key = build_object_key("audio", meta.title, ".mp3")
        self.storage.put_object(key, audio, _AUDIO_CONTENT_TYPE)
        logger.info("ingest_blob_stored: key=%s", key)

        song = Song(
            title=meta.title,
            duration_sec=source.duration_sec,
            audio_key=key,
            cover_url=source.thumbnail,
            album_id=req.album_id,
            genre=req.genre,
            artists=artists,
        )
        db.add(song)
        try:
            db.flush()
        except SQLAlchemyError:
            logger.error("ingest_persist_failed: blob orphaned key=%s", key)
            raise
        logger.info("ingest_done: song_id=%s key=%s", song.id, key)
        return song


# PUBLIC_INTERFACE
def get_ingestion_pipeline() -> IngestionPipeline:
    """FastAPI dependency wiring the pipeline to the process-wide providers."""
    return IngestionPipeline(
        downloader=get_downloader(),
        cleaner=MetadataCleaner(get_ai_client(), cleanup_model()),
        enrichment=get_enrichment_client(),
        storage=get_storage(),
    )
