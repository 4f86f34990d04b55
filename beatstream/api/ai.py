"""
OpenRouter chat-completions client and helpers for parsing model output.

Models are asked for JSON but routinely wrap it in prose or code fences, so
every caller goes through `extract_first_json_object` instead of `json.loads`.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional

import requests

from beatstream.api.errors import UpstreamError

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
_DEFAULT_CLEANUP_MODEL = "z-ai/glm-4.5-air:free"
_DEFAULT_LYRICS_MODEL = "arcee-ai/trinity-large-preview:free"

_decoder = json.JSONDecoder()


# PUBLIC_INTERFACE
def extract_first_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Return the first well-formed JSON object embedded in `text`, or None.

    Each '{' is tried as a starting point until one decodes to a dict, so
    leading prose, code fences and trailing commentary are all tolerated.
    """
    if not text:
        return None
    start = text.find("{")
    while start != -1:
        try:
            value, _end = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


class OpenRouterClient:
    """Minimal chat-completions client; one POST per call, no retries."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = _DEFAULT_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def complete(
        self,
        messages: List[Dict[str, str]],
        model: str,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Send `messages` to `model` and return the first choice's content.

        Raises:
            UpstreamError: not configured, transport failure, non-2xx status or empty content.
        """
        if not self.api_key:
            raise UpstreamError("AI provider is not configured.")

        body: Dict[str, Any] = {"model": model, "messages": messages}
        if response_format is not None:
            body["response_format"] = response_format

        try:
            response = self.session.post(
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "X-Title": "BeatStream Metadata Cleaner",
                },
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError("AI provider request failed.", details=str(exc))

        if not response.ok:
            raise UpstreamError(
                "AI provider returned an error.",
                details={"status": response.status_code, "body": response.text[:500]},
            )

        try:
            data = response.json()
        except ValueError:
            raise UpstreamError("AI provider returned invalid JSON.")

        choices = data.get("choices") if isinstance(data, dict) else None
        first = choices[0] if isinstance(choices, list) and choices else None
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content:
            raise UpstreamError("AI provider returned no content.")
        return content


@dataclass
class LyricsResult:
    lyrics: Optional[str]
    lrc: Optional[str]
    moods: List[str] = field(default_factory=list)


_LYRICS_PROMPT = (
    'Find and return the complete lyrics for the song "{title}" by {artists}. '
    "If possible, include an LRC version (timestamped lines) as well as the plain lyrics. "
    'Also analyse the mood of the song and produce 3-5 mood tags (such as "Relax", "Energetic", "Sad"). '
    'Output JSON only: {{"lyrics": "text...", "lrc": "[00:10.00]text...", "moods": ["Mood1", "Mood2"]}}'
)


# PUBLIC_INTERFACE
def generate_lyrics(client: OpenRouterClient, title: str, artist_names: List[str], model: str) -> LyricsResult:
    """
    Ask the model for lyrics, LRC and mood tags of a song.

    Raises:
        UpstreamError: the call failed or the answer contained no JSON object.
    """
    prompt = _LYRICS_PROMPT.format(title=title, artists=", ".join(artist_names) or "an unknown artist")
    content = client.complete(
        [{"role": "user", "content": prompt}],
        model=model,
        response_format={"type": "json_object"},
    )
    result = extract_first_json_object(content)
    if result is None:
        logger.warning("ai_lyrics_unparseable: content=%r", content[:200])
        raise UpstreamError("AI response did not contain JSON.")

    moods = result.get("moods")
    return LyricsResult(
        lyrics=result.get("lyrics") or None,
        lrc=result.get("lrc") or None,
        moods=[str(m) for m in moods] if isinstance(moods, list) else [],
    )


# PUBLIC_INTERFACE
def cleanup_model() -> str:
    return os.getenv("OPENROUTER_CLEANUP_MODEL", _DEFAULT_CLEANUP_MODEL)


# PUBLIC_INTERFACE
def lyrics_model() -> str:
    return os.getenv("OPENROUTER_LYRICS_MODEL", _DEFAULT_LYRICS_MODEL)


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_ai_client() -> OpenRouterClient:
    """FastAPI dependency; the client is unconfigured (not failing) when OPENROUTER_API_KEY is unset."""
    return OpenRouterClient(
        api_key=os.getenv("OPENROUTER_API_KEY"),
        base_url=os.getenv("OPENROUTER_BASE_URL", _DEFAULT_BASE_URL),
    )
