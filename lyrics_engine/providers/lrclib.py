"""
LRCLib lyrics provider.

Fetches synced lyrics from lrclib.net (free, no API key required) and
parses the LRC text into timed lines. Plain (unsynced) lyrics are
returned as untimed lines when no synced version exists.

API:
    GET /api/get?track_name=&artist_name=&album_name=&duration=
        200 -> {syncedLyrics, plainLyrics, instrumental, ...}
        404 -> no lyrics for this signature
"""

import asyncio
import re
from typing import Any, Sequence

import aiohttp

from lyrics_engine.core.exceptions import ProviderError
from lyrics_engine.core.logger import get_logger
from lyrics_engine.core.models import LyricLine, LyricsDocument, SongIdentity
from lyrics_engine.providers.base import FetchOptions, Provider


logger = get_logger(__name__)

LRCLIB_API = "https://lrclib.net/api"
USER_AGENT = "lyrics-engine (https://github.com/lyrics-engine/lyrics-engine)"

_LRC_LINE = re.compile(r"\[(\d{1,3}):(\d{2})(?:[.:](\d{1,3}))?\](.*)")


def parse_lrc(lrc_text: str) -> list[LyricLine]:
    """
    Parse LRC text into timed lines.

    LRC format: [mm:ss.xx]Lyrics text here

    A line's end time is the next line's start; the last line ends where
    it starts. Lines with several timestamps are emitted once per stamp.

    Returns:
        Lines sorted by start time (milliseconds).
    """
    timed: list[tuple[int, str]] = []

    for raw_line in lrc_text.splitlines():
        raw_line = raw_line.strip()
        stamps = []
        # Peel every leading [mm:ss.xx] tag off the line
        while True:
            match = _LRC_LINE.match(raw_line)
            if not match:
                break
            minutes, seconds, fraction, rest = match.groups()
            fraction = fraction or "0"
            # .xx is hundredths, .xxx is milliseconds
            ms = int(fraction) * 10 if len(fraction) == 2 else int(fraction.ljust(3, "0"))
            stamps.append(int(minutes) * 60_000 + int(seconds) * 1000 + ms)
            raw_line = rest
        for stamp in stamps:
            timed.append((stamp, raw_line.strip()))

    timed.sort(key=lambda item: item[0])

    lines = []
    for index, (start, text) in enumerate(timed):
        end = timed[index + 1][0] if index + 1 < len(timed) else start
        lines.append(LyricLine(text=text, start=start, end=end))
    return lines


class LRCLibProvider:
    """
    Lyrics client for lrclib.net.

    Attributes:
        name: Provider name used in the fallback chain.
    """

    name = Provider.LRCLIB.value

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str = LRCLIB_API,
        timeout: float = 10.0
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def fetch(
        self,
        song: SongIdentity,
        source_order: Sequence[str],
        force_reload: bool,
        fetch_options: FetchOptions,
    ) -> LyricsDocument | None:
        """
        Fetch lyrics for a song.

        source_order is ignored: LRCLib is a single source.

        Raises:
            ProviderError: On network failure or an unexpected status.
        """
        params: dict[str, Any] = {"track_name": song.title, "artist_name": song.artist}
        if song.album:
            params["album_name"] = song.album
        if song.duration:
            params["duration"] = int(round(song.duration))

        headers = {"User-Agent": USER_AGENT}
        if force_reload or fetch_options.bypass_cache:
            headers["Cache-Control"] = "no-cache"

        try:
            async with self._session.get(
                f"{self._base_url}/get", params=params, headers=headers, timeout=self._timeout
            ) as resp:
                if resp.status == 404:
                    return None
                if resp.status != 200:
                    raise ProviderError(
                        f"LRCLib request failed with status {resp.status}",
                        provider=self.name,
                        details={"status": resp.status}
                    )
                data = await resp.json()
        except ValueError as e:
            raise ProviderError(
                f"LRCLib returned a non-JSON body: {e}",
                provider=self.name,
                details={"original_error": str(e)}
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(
                f"LRCLib request failed: {e}",
                provider=self.name,
                details={"original_error": str(e)}
            ) from e

        return self._to_document(data)

    def _to_document(self, data: dict[str, Any]) -> LyricsDocument | None:
        if not isinstance(data, dict) or data.get("instrumental"):
            return None

        metadata = {"source": self.name, "lrclib_id": data.get("id")}

        synced = data.get("syncedLyrics")
        if synced:
            lines = parse_lrc(synced)
            if lines:
                return LyricsDocument(lines=lines, type="Line", metadata=metadata)

        plain = data.get("plainLyrics")
        if plain:
            lines = [LyricLine(text=text.strip()) for text in plain.splitlines() if text.strip()]
            metadata["synced"] = False
            return LyricsDocument(lines=lines, type="Line", metadata=metadata)

        return None
