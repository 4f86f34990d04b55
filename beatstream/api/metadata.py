"""
Title/artist cleanup for ingested tracks.

YouTube titles look like "Tulus & Raisa - Gajah (Official Music Video)". With
an OpenRouter key configured we ask a model twice (extract, then verify);
otherwise, or whenever the first pass fails, the deterministic parser below
is used.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from beatstream.api.ai import OpenRouterClient, extract_first_json_object
from beatstream.api.errors import UpstreamError

logger = logging.getLogger(__name__)

_ARTIST_SEPARATORS = re.compile(r"\s*[,&]\s*|\s+(?:and|x|feat\.?|ft\.?)\s+", re.IGNORECASE)
_TITLE_NOISE = re.compile(
    r"\(Official.*?\)|\[Official.*?\]|\(Lyrics.*?\)|\[Lyrics.*?\]"
    r"|Official Music Video|Official Video|Music Video|LYRICS",
    re.IGNORECASE,
)
_WHITESPACE = re.compile(r"\s+")

_EXTRACT_PROMPT = (
    "You are a professional music librarian. Task: extract the clean song title and list all artist "
    "names from a YouTube title. Rules: 1. REMOVE all noise like 'Official Video', 'Music Video', "
    "'LYRICS', 'Lirik', '4K', 'HD', '(...)', '[...]'. 2. DO NOT include the artist name in the 'title' "
    'field. 3. Response MUST be ONLY JSON: {"title": "Clean Title", "artists": ["Artist 1", "Artist 2"]}'
)
_VERIFY_PROMPT = (
    "You are a verification AI. Review this metadata. Does the 'title' still contain artist names, "
    "redundant words, or brackets? If yes, clean it further. Response MUST be ONLY JSON: "
    '{"title": "Final Clean Title", "artists": ["Final Artists"]}'
)


@dataclass(frozen=True)
class CleanMetadata:
    title: str
    artists: List[str]


def _strip_noise(title: str) -> str:
    return _WHITESPACE.sub(" ", _TITLE_NOISE.sub("", title)).strip()


# PUBLIC_INTERFACE
def split_artist_names(segment: str) -> List[str]:
    """Split "A & B, C feat. D" into ["A", "B", "C", "D"]."""
    return [name.strip() for name in _ARTIST_SEPARATORS.split(segment) if name.strip()]


# PUBLIC_INTERFACE
def parse_title_locally(raw_title: str) -> CleanMetadata:
    """
    Deterministic "Artist - Title" parser.

    The text before the first '-' holds the artists, the text after the last
    '-' is the title with noise tokens removed. Without a '-' the whole input
    is both title and sole artist.
    """
    raw = raw_title.strip()
    if "-" not in raw:
        return CleanMetadata(title=raw, artists=[raw])

    artist_segment = raw[: raw.index("-")]
    title = _strip_noise(raw.rsplit("-", 1)[1])
    artists = split_artist_names(artist_segment)
    return CleanMetadata(title=title or raw, artists=artists or [raw])


def _coerce(result: Dict[str, Any], fallback: CleanMetadata) -> CleanMetadata:
    title = result.get("title")
    title = title.strip() if isinstance(title, str) else ""

    artists = result.get("artists")
    if isinstance(artists, list):
        artists = [str(a).strip() for a in artists if str(a).strip()]
    else:
        artists = []

    return CleanMetadata(title=title or fallback.title, artists=artists or fallback.artists)


class MetadataCleaner:
    """Two-stage AI cleanup with a deterministic fallback."""

    def __init__(self, client: Optional[OpenRouterClient], model: str) -> None:
        self.client = client
        self.model = model

    def clean(self, raw_title: str) -> CleanMetadata:
        local = parse_title_locally(raw_title)
        if self.client is None or not self.client.configured:
            logger.info("metadata_cleanup_local: reason=no_ai_key")
            return local

        try:
            first = self._ask(
                [
                    {"role": "system", "content": _EXTRACT_PROMPT},
                    {"role": "user", "content": f'YouTube Title: "{raw_title}"'},
                ]
            )
        except UpstreamError as exc:
            logger.warning("metadata_cleanup_stage1_failed: %s details=%s", exc.message, exc.details)
            return local
        stage1 = _coerce(first, fallback=local)
        logger.info("metadata_cleanup_stage1: title=%r artists=%r", stage1.title, stage1.artists)

        try:
            second = self._ask(
                [
                    {"role": "system", "content": _VERIFY_PROMPT},
                    {
                        "role": "user",
                        "content": (
                            f"Input: {json.dumps({'title': stage1.title, 'artists': stage1.artists})}\n"
                            f'Original YouTube Title: "{raw_title}"'
                        ),
                    },
                ]
            )
        except UpstreamError as exc:
            logger.warning("metadata_cleanup_stage2_failed: %s", exc.message)
            return stage1

        final = _coerce(second, fallback=stage1)
        logger.info("metadata_cleanup_stage2: title=%r artists=%r", final.title, final.artists)
        return final

    def _ask(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        content = self.client.complete(messages, model=self.model)
        result = extract_first_json_object(content)
        if result is None:
            raise UpstreamError("AI response did not contain JSON.", details=content[:200])
        return result
