"""
Google Translate client (unofficial gtx endpoint).

Provides three services from the same endpoint:
    - translate(): one line of text into a target language
    - detect(): language of a text sample (response field [2])
    - romanize(): line-by-line romanization (dt=rm transliteration)

Response shape of translate_a/single (abridged):
    [
      [["translated", "original", null, null, ...], ..., [null, null, "romanized", "source-translit"]],
      null,
      "ja",           # detected source language
      ...
    ]
"""

import asyncio
from dataclasses import replace
from typing import Any

import aiohttp

from lyrics_engine.core.exceptions import ProviderError
from lyrics_engine.core.logger import get_logger
from lyrics_engine.core.models import LyricLine, LyricsDocument
from lyrics_engine.providers.base import Provider
from lyrics_engine.utils.pool import map_bounded
from lyrics_engine.utils.text import is_purely_latin


logger = get_logger(__name__)

GOOGLE_TRANSLATE_URL = "https://translate.googleapis.com/translate_a/single"

# Requests in flight at once when romanizing a document
MAX_CONCURRENT_REQUESTS = 5


class GoogleTranslateClient:
    """
    Translation, detection and romanization over the gtx endpoint.

    Implements TranslationProviderClient, LanguageDetector and LineRomanizer.
    """

    name = Provider.GOOGLE.value

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str = GOOGLE_TRANSLATE_URL,
        timeout: float = 10.0
    ) -> None:
        self._session = session
        self._url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _request(self, text: str, target_lang: str, modes: list[str]) -> Any:
        params = [("client", "gtx"), ("sl", "auto"), ("tl", target_lang), ("q", text)]
        params.extend(("dt", mode) for mode in modes)

        try:
            async with self._session.get(self._url, params=params, timeout=self._timeout) as resp:
                if resp.status != 200:
                    raise ProviderError(
                        f"Google Translate request failed with status {resp.status}",
                        provider=self.name,
                        details={"status": resp.status}
                    )
                # The endpoint answers with a JSON body labelled text/javascript
                return await resp.json(content_type=None)
        except ValueError as e:
            raise ProviderError(
                f"Google Translate returned a non-JSON body: {e}",
                provider=self.name,
                details={"original_error": str(e)}
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(
                f"Google Translate request failed: {e}",
                provider=self.name,
                details={"original_error": str(e)}
            ) from e

    async def translate(self, text: str, target_lang: str) -> str:
        """
        Translate one line.

        Raises:
            ProviderError: On request failure or an unexpected payload.
        """
        if not text.strip():
            return text

        data = await self._request(text, target_lang, ["t"])
        try:
            return "".join(segment[0] for segment in data[0] if segment and segment[0])
        except (TypeError, IndexError) as e:
            raise ProviderError(
                "Unexpected Google Translate response",
                provider=self.name,
                details={"original_error": str(e)}
            ) from e

    async def detect(self, sample_text: str) -> str | None:
        """Return the detected language code, or None."""
        data = await self._request(sample_text, "en", ["t"])
        detected = data[2] if isinstance(data, list) and len(data) > 2 else None
        return detected.lower() if isinstance(detected, str) else None

    async def _romanize_text(self, text: str) -> str:
        if not text.strip() or is_purely_latin(text):
            return text

        data = await self._request(text, "en", ["t", "rm"])
        try:
            for segment in data[0]:
                # The transliteration segment carries the source romanization at [3]
                if isinstance(segment, list) and len(segment) > 3 and isinstance(segment[3], str):
                    return segment[3]
        except (TypeError, IndexError) as e:
            raise ProviderError(
                "Unexpected Google romanization response",
                provider=self.name,
                details={"original_error": str(e)}
            ) from e
        return text

    async def romanize(self, document: LyricsDocument) -> list[LyricLine]:
        """
        Romanize every line of a document.

        Word-synced lines are romanized per syllable as well. A line whose
        text has no transliteration comes back with romanized_text equal to
        its text.
        """
        texts = []
        for line in document.lines:
            texts.append(line.text)
            texts.extend(syllable.text for syllable in line.syllables)

        romanized = await map_bounded(self._romanize_text, texts, MAX_CONCURRENT_REQUESTS)

        lines = []
        position = 0
        for line in document.lines:
            line_roman = romanized[position]
            syllable_romans = romanized[position + 1:position + 1 + len(line.syllables)]
            position += 1 + len(line.syllables)
            lines.append(replace(
                line,
                romanized_text=line_roman,
                syllables=[
                    replace(syllable, romanized_text=roman)
                    for syllable, roman in zip(line.syllables, syllable_romans)
                ],
            ))
        return lines
