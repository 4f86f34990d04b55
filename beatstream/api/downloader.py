"""
Clients for external audio sources.

- DownloaderClient: third-party downloader API that turns YouTube/Spotify links
  into a direct mp3 URL plus metadata, and searches Spotify tracks.
- VideoSearchClient: YouTube video search through ytmusicapi.

Only the fields we read are modelled; the providers' payloads carry more.
"""

from __future__ import annotations

import logging
import math
import os
import time
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, TypeVar

import requests

from beatstream.api.errors import BinaryFetchError, UpstreamError, UpstreamResolutionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_BASE_URL = "https://api.ferdev.my.id"
_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "audio/mpeg, audio/*;q=0.9, */*;q=0.8",
}

RETRY_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 2.0


# PUBLIC_INTERFACE
def parse_duration(value: Any) -> int:
    """
    Best-effort duration in whole seconds.

    Accepts numbers (243, 243.7), numeric strings ("243") and clock strings
    ("4:03", "1:02:03"); anything else is 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return max(int(math.floor(value)), 0) if math.isfinite(value) else 0
    text = str(value).strip()
    if not text:
        return 0
    try:
        if ":" in text:
            seconds = 0
            for part in text.split(":"):
                seconds = seconds * 60 + int(part)
            return max(seconds, 0)
        return max(int(math.floor(float(text))), 0)
    except ValueError:
        return 0


@dataclass
class ResolvedSource:
    """What a downloader call tells us about one track."""

    raw_title: str
    download_url: str
    thumbnail: Optional[str] = None
    duration: Any = None
    # Only Spotify gives artist credits (raw_title is then already clean); YouTube titles need cleanup.
    artists: Optional[List[str]] = None

    @property
    def duration_sec(self) -> int:
        return parse_duration(self.duration)

    @property
    def display_title(self) -> str:
        """Preview title: "<artists> - <title>" when the source credits artists, else the raw title."""
        if self.artists:
            return f"{', '.join(self.artists)} - {self.raw_title}"
        return self.raw_title


class DownloaderClient:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = _DEFAULT_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
        retry_delay: float = RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.retry_delay = retry_delay
        self._sleep = sleep

    # ── low level ────────────────────────────────────────────────────────────

    def _get_json(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        if not self.api_key:
            raise UpstreamResolutionError("Downloader API key is not configured.")
        try:
            response = self.session.get(
                f"{self.base_url}{path}",
                params={**params, "apikey": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamResolutionError("Failed to reach the downloader API.", details=str(exc))

        if not response.ok:
            raise UpstreamResolutionError(
                "Downloader API returned an error.",
                details={"status": response.status_code, "body": response.text[:500]},
            )
        try:
            payload = response.json()
        except ValueError:
            raise UpstreamResolutionError("Downloader API returned invalid JSON.")
        if not isinstance(payload, dict):
            raise UpstreamResolutionError("Downloader API returned an unexpected payload.")
        return payload

    def _with_retries(self, what: str, attempts: int, call: Callable[[], T]) -> T:
        for attempt in range(1, attempts + 1):
            try:
                return call()
            except UpstreamError as exc:
                logger.warning("%s_attempt_failed: attempt=%s/%s error=%s", what, attempt, attempts, exc.message)
                if attempt == attempts:
                    raise
                self._sleep(self.retry_delay)
        raise AssertionError("unreachable")

    # ── resolution ───────────────────────────────────────────────────────────

    def resolve_youtube(self, youtube_url: str) -> ResolvedSource:
        """Resolve a YouTube link to an mp3 URL. Single attempt."""
        payload = self._get_json("/downloader/ytmp3", {"link": youtube_url})
        data = payload.get("data")
        if not payload.get("success") or not isinstance(data, dict):
            raise UpstreamResolutionError("Failed to get data from YouTube.", details=payload.get("message"))

        title = data.get("title")
        dlink = data.get("dlink")
        if not title or not dlink:
            raise UpstreamResolutionError("Downloader response is missing title or download link.")

        logger.info("resolve_youtube: url=%s title=%r", youtube_url, title)
        return ResolvedSource(
            raw_title=str(title),
            download_url=str(dlink),
            thumbnail=data.get("thumbnail"),
            duration=data.get("duration"),
        )

    def resolve_spotify(self, spotify_url: str) -> ResolvedSource:
        """Resolve a Spotify track link; retried up to 3 attempts with a fixed delay."""
        return self._with_retries("resolve_spotify", RETRY_ATTEMPTS, lambda: self._resolve_spotify_once(spotify_url))

    def _resolve_spotify_once(self, spotify_url: str) -> ResolvedSource:
        payload = self._get_json("/downloader/spotify", {"link": spotify_url})
        data = payload.get("data")
        if not payload.get("success") or not isinstance(data, dict):
            raise UpstreamResolutionError("Failed to get data from Spotify.", details=payload.get("message"))

        title = data.get("title")
        dlink = payload.get("download") or data.get("download") or data.get("url")
        if not title or not dlink:
            raise UpstreamResolutionError("Download link not found in the Spotify response.")

        images = (data.get("album") or {}).get("images") or []
        thumbnail = images[0].get("url") if images and isinstance(images[0], dict) else None
        artist_field = data.get("artist") or ""
        artists = [name.strip() for name in str(artist_field).split(",") if name.strip()]

        logger.info("resolve_spotify: url=%s title=%r artists=%r", spotify_url, title, artists)
        return ResolvedSource(
            raw_title=str(title),
            download_url=str(dlink),
            thumbnail=thumbnail or data.get("thumbnail"),
            duration=data.get("duration"),
            artists=artists or None,
        )

    # ── search ───────────────────────────────────────────────────────────────

    def search_spotify(self, query: str) -> List[Dict[str, Any]]:
        """Search Spotify tracks; results normalized to the shape of the YouTube search."""
        payload = self._get_json("/search/spotify", {"query": query})
        raw_tracks = payload.get("result") or payload.get("data")
        if not isinstance(raw_tracks, list):
            raise UpstreamResolutionError("Failed to get search results from Spotify.")

        tracks = []
        for track in raw_tracks:
            if not isinstance(track, dict):
                continue
            url = track.get("url")
            track_id = track.get("id") or (url.rstrip("/").split("/")[-1] if url else uuid.uuid4().hex)
            artist = track.get("artist")
            tracks.append(
                {
                    "video_id": str(track_id),
                    "url": url,
                    "title": track.get("title") or track.get("name") or "Unknown Title",
                    "thumbnail": track.get("thumbnail"),
                    "duration": track.get("duration_at") or "0:00",
                    "author": track.get("artists") or (artist.get("name") if isinstance(artist, dict) else artist)
                    or "Unknown Artist",
                }
            )
        return tracks

    # ── binary ───────────────────────────────────────────────────────────────

    def fetch_binary(self, url: str, attempts: int = 1) -> bytes:
        """Download the audio bytes with browser-like headers."""
        return self._with_retries("fetch_binary", attempts, lambda: self._fetch_binary_once(url))

    def _fetch_binary_once(self, url: str) -> bytes:
        try:
            response = self.session.get(url, headers=_BROWSER_HEADERS, timeout=self.timeout)
        except requests.RequestException as exc:
            raise BinaryFetchError(details=str(exc))
        if not response.ok:
            raise BinaryFetchError(details={"status": response.status_code})
        if not response.content:
            raise BinaryFetchError("The audio source returned an empty file.")
        logger.info("fetch_binary: bytes=%s", len(response.content))
        return response.content


class VideoSearchClient:
    """YouTube video search (no API key needed)."""

    def __init__(self, ytmusic: Any = None) -> None:
        self._ytmusic = ytmusic

    def _client(self) -> Any:
        if self._ytmusic is None:
            from ytmusicapi import YTMusic

            self._ytmusic = YTMusic()
        return self._ytmusic

    def search(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            results = self._client().search(query, filter="videos", limit=limit)
        except Exception as exc:  # ytmusicapi raises assorted exception types
            logger.warning("video_search_failed: query=%r exc=%s", query, exc)
            raise UpstreamError("YouTube search failed.", details=str(exc))

        videos = []
        for item in results[:limit]:
            video_id = item.get("videoId")
            if not video_id:
                continue
            thumbnails = item.get("thumbnails") or []
            artists = item.get("artists") or []
            videos.append(
                {
                    "video_id": video_id,
                    "url": f"https://www.youtube.com/watch?v={video_id}",
                    "title": item.get("title") or "",
                    "thumbnail": thumbnails[-1].get("url") if thumbnails else None,
                    "duration": item.get("duration"),
                    "author": artists[0].get("name") if artists else None,
                }
            )
        return videos


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_downloader() -> DownloaderClient:
    return DownloaderClient(
        api_key=os.getenv("DOWNLOADER_API_KEY"),
        base_url=os.getenv("DOWNLOADER_BASE_URL", _DEFAULT_BASE_URL),
    )


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_video_search() -> VideoSearchClient:
    return VideoSearchClient()
