"""
Admin ingestion endpoints (admin token required):
- GET /songs/yt-search, GET /songs/spotify-search
- POST /songs/yt-preview, POST /songs/spotify-preview
- POST /songs/yt-download, POST /songs/spotify-download

This router must be included before the songs router so the static paths win
over /songs/{song_id}.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from beatstream.api import catalog
from beatstream.api.auth import TokenIdentity, require_admin
from beatstream.api.db import db_session_dep
from beatstream.api.downloader import DownloaderClient, VideoSearchClient, get_downloader, get_video_search
from beatstream.api.ingestion import IngestionPipeline, get_ingestion_pipeline
from beatstream.api.schemas import (
    PreviewResponse,
    SearchResponse,
    SearchResult,
    SongEnvelope,
    SpotifyDownloadRequest,
    SpotifySourceRequest,
    YoutubeDownloadRequest,
    YoutubeSourceRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/songs", tags=["Ingestion"])

_SEARCH_LIMIT = 10


@router.get(
    "/yt-search",
    response_model=SearchResponse,
    summary="Search YouTube",
    operation_id="search_youtube",
)
def search_youtube(
    q: str = Query(..., min_length=1),
    _admin: TokenIdentity = Depends(require_admin),
    search: VideoSearchClient = Depends(get_video_search),
) -> SearchResponse:
    videos = search.search(q, limit=_SEARCH_LIMIT)
    return SearchResponse(videos=[SearchResult(**v) for v in videos])


@router.get(
    "/spotify-search",
    response_model=SearchResponse,
    summary="Search Spotify",
    operation_id="search_spotify",
)
def search_spotify(
    q: str = Query(..., min_length=1),
    _admin: TokenIdentity = Depends(require_admin),
    downloader: DownloaderClient = Depends(get_downloader),
) -> SearchResponse:
    tracks = downloader.search_spotify(q)[:_SEARCH_LIMIT]
    return SearchResponse(videos=[SearchResult(**t) for t in tracks])


@router.post(
    "/yt-preview",
    response_model=PreviewResponse,
    summary="Preview a YouTube import",
    description="Resolves the link and returns cleaned metadata without downloading anything.",
    operation_id="preview_youtube",
)
def preview_youtube(
    req: YoutubeSourceRequest,
    _admin: TokenIdentity = Depends(require_admin),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
) -> PreviewResponse:
    return pipeline.preview_youtube(req.youtube_url)


@router.post(
    "/spotify-preview",
    response_model=PreviewResponse,
    summary="Preview a Spotify import",
    operation_id="preview_spotify",
)
def preview_spotify(
    req: SpotifySourceRequest,
    _admin: TokenIdentity = Depends(require_admin),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
) -> PreviewResponse:
    return pipeline.preview_spotify(req.spotify_url)


@router.post(
    "/yt-download",
    response_model=SongEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Import from YouTube",
    description="Downloads the audio, stores it and creates the song with cleaned metadata.",
    operation_id="download_youtube",
)
def download_youtube(
    req: YoutubeDownloadRequest,
    admin: TokenIdentity = Depends(require_admin),
    db: Session = Depends(db_session_dep),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
) -> SongEnvelope:
    logger.info("ingest_start: source=youtube url=%s admin=%s", req.youtube_url, admin.user_id)
    song = pipeline.ingest_youtube(db, req)
    return SongEnvelope(song=catalog.song_detail(song))


@router.post(
    "/spotify-download",
    response_model=SongEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Import from Spotify",
    operation_id="download_spotify",
)
def download_spotify(
    req: SpotifyDownloadRequest,
    admin: TokenIdentity = Depends(require_admin),
    db: Session = Depends(db_session_dep),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
) -> SongEnvelope:
    logger.info("ingest_start: source=spotify url=%s admin=%s", req.spotify_url, admin.user_id)
    song = pipeline.ingest_spotify(db, req)
    return SongEnvelope(song=catalog.song_detail(song))
