"""
Spotify Web API artist enrichment (avatar + genres).

Uses the client-credentials flow. The access token is cached in process
memory with its expiry and refreshed on demand; concurrent refreshes are
allowed and the last one to finish wins, since any fresh token is valid.
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, List, Optional, Sequence

import requests

logger = logging.getLogger(__name__)

_TOKEN_URL = "https://accounts.spotify.com/api/token"
_API_BASE_URL = "https://api.spotify.com/v1"
# Refresh a minute early so a token never expires mid-request.
_EXPIRY_MARGIN_SECONDS = 60
_MAX_WORKERS = 8


@dataclass
class ArtistEnrichment:
    avatar_url: Optional[str] = None
    genres: List[str] = field(default_factory=list)

    @property
    def bio(self) -> Optional[str]:
        return f"Genres: {', '.join(self.genres)}" if self.genres else None


class TokenCache:
    """A cached bearer token and the wall-clock time it stops being usable."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self.value: Optional[str] = None
        self.expires_at: float = 0.0

    def get(self) -> Optional[str]:
        if self.value and self._clock() < self.expires_at:
            return self.value
        return None

    def store(self, value: str, expires_in: float) -> None:
        self.value = value
        self.expires_at = self._clock() + expires_in - _EXPIRY_MARGIN_SECONDS


class SpotifyEnrichmentClient:
    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        session: Optional[requests.Session] = None,
        token_cache: Optional[TokenCache] = None,
        timeout: float = 10.0,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = session or requests.Session()
        self.token_cache = token_cache or TokenCache()
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def get_token(self) -> Optional[str]:
        """Return the cached token, refreshing it when expired or absent; None when unavailable."""
        if not self.configured:
            return None

        cached = self.token_cache.get()
        if cached:
            return cached

        try:
            response = self.session.post(
                _TOKEN_URL,
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("spotify_token_failed: %s", exc)
            return None

        token = data.get("access_token")
        if not token:
            logger.warning("spotify_token_missing: keys=%s", sorted(data))
            return None

        self.token_cache.store(token, float(data.get("expires_in", 3600)))
        logger.info("spotify_token_refreshed: expires_in=%s", data.get("expires_in"))
        return token

    def enrich(self, name: str) -> ArtistEnrichment:
        """Look up the best matching Spotify artist; empty enrichment on any failure."""
        token = self.get_token()
        if not token:
            return ArtistEnrichment()

        try:
            response = self.session.get(
                f"{_API_BASE_URL}/search",
                params={"q": name, "type": "artist", "limit": 1},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            items = (response.json().get("artists") or {}).get("items") or []
        except (requests.RequestException, ValueError) as exc:
            logger.warning("spotify_enrich_failed: name=%r exc=%s", name, exc)
            return ArtistEnrichment()

        if not items:
            return ArtistEnrichment()

        artist = items[0]
        images = artist.get("images") or []
        return ArtistEnrichment(
            avatar_url=images[0].get("url") if images else None,
            genres=list(artist.get("genres") or []),
        )

    def enrich_many(self, names: Sequence[str]) -> List[ArtistEnrichment]:
        """Enrich independent names concurrently; results keep the input order."""
        if not names:
            return []
        with ThreadPoolExecutor(max_workers=min(_MAX_WORKERS, len(names))) as pool:
            return list(pool.map(self.enrich, names))


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_enrichment_client() -> SpotifyEnrichmentClient:
    """Process-wide client so the token cache is shared between requests."""
    return SpotifyEnrichmentClient(
        client_id=os.getenv("SPOTIFY_CLIENT_ID"),
        client_secret=os.getenv("SPOTIFY_CLIENT_SECRET"),
    )
