"""
YouTube caption fallback.

When no lyrics provider has a song that is playing from a video, the
player's caption track list (song.subtitle) is used instead:

    {"captionTracks": [{"baseUrl", "languageCode", "kind", "vssId", "isDefault"}, ...]}

Auto-generated ('asr') and auto-translated (vssId 'a.*') tracks are
skipped. Selection order: the default track, then the preferred
language, then the first remaining track. The track is fetched as json3:

    {"events": [{"tStartMs": 1200, "dDurationMs": 2500, "segs": [{"utf8": "..."}]}]}
"""

import asyncio
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import aiohttp

from lyrics_engine.core.exceptions import ProviderError
from lyrics_engine.core.logger import get_logger
from lyrics_engine.core.models import LyricLine, LyricsDocument, SongIdentity
from lyrics_engine.utils.text import normalize_language_code


logger = get_logger(__name__)


def select_caption_track(tracks: list[dict[str, Any]], preferred_lang: str) -> dict[str, Any] | None:
    """Pick the caption track to use, or None if only generated tracks exist."""
    valid = [
        t for t in tracks
        if t.get("kind") != "asr" and not str(t.get("vssId") or "").startswith("a.")
    ]
    if not valid:
        return None

    for track in valid:
        if track.get("isDefault"):
            return track

    preferred = normalize_language_code(preferred_lang)
    for track in valid:
        if normalize_language_code(track.get("languageCode") or track.get("lang")) == preferred:
            return track

    return valid[0]


def _with_json3(url: str) -> str:
    """Set fmt=json3 on a timedtext URL, keeping its other parameters."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "fmt"]
    query.append(("fmt", "json3"))
    return urlunsplit(parts._replace(query=urlencode(query)))


def parse_json3(data: dict[str, Any]) -> list[LyricLine]:
    """Convert json3 caption events into timed lines, skipping blank events."""
    lines = []
    for event in data.get("events") or []:
        text = "".join(seg.get("utf8", "") for seg in event.get("segs") or []).strip()
        if not text:
            continue
        start = event.get("tStartMs", 0)
        lines.append(LyricLine(text=text, start=start, end=start + event.get("dDurationMs", 0)))
    return lines


class YouTubeSubtitleClient:
    """Implements SubtitleExtractor over YouTube timedtext URLs."""

    name = "youtube-subtitles"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        preferred_lang: str = "en",
        timeout: float = 10.0
    ) -> None:
        self._session = session
        self._preferred_lang = preferred_lang
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def fetch_subtitles(self, song: SongIdentity) -> LyricsDocument | None:
        """
        Build lyrics from the song's caption track.

        Returns:
            A line-synced document, or None when there is no usable track.

        Raises:
            ProviderError: If the caption request fails.
        """
        tracks = (song.subtitle or {}).get("captionTracks") or []
        track = select_caption_track(tracks, self._preferred_lang)
        if track is None:
            return None

        url = track.get("baseUrl") or track.get("url")
        if not url:
            return None

        try:
            async with self._session.get(_with_json3(url), timeout=self._timeout) as resp:
                if resp.status != 200:
                    raise ProviderError(
                        f"Caption request failed with status {resp.status}",
                        provider=self.name,
                        details={"status": resp.status, "video_id": song.video_id}
                    )
                data = await resp.json(content_type=None)
        except ValueError as e:
            raise ProviderError(
                f"Caption track is not valid json3: {e}",
                provider=self.name,
                details={"video_id": song.video_id}
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(
                f"Caption request failed: {e}",
                provider=self.name,
                details={"video_id": song.video_id}
            ) from e

        lines = parse_json3(data if isinstance(data, dict) else {})
        if not lines:
            return None

        language = normalize_language_code(track.get("languageCode") or track.get("lang"))
        return LyricsDocument(
            lines=lines,
            type="Line",
            metadata={"source": self.name, "language": language, "video_id": song.video_id},
        )
