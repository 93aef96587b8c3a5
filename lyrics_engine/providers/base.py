"""
Provider interfaces consumed by the orchestrators.

The orchestrators only know these protocols. Concrete HTTP clients live
in the sibling modules (lrclib, google, gemini, youtube) and tests use
small in-memory fakes.

Every client signals failure by raising ProviderError (or returning None
for "no result"); it never returns partial garbage.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence

from lyrics_engine.core.models import LyricLine, LyricsDocument, SongIdentity


class Provider(Enum):
    """
    Known provider names.

    Values:
        LRCLIB: lrclib.net synced lyrics
        LOCAL: User-uploaded lyrics from the local_lyrics collection
        GOOGLE: Google Translate (translation, romanization, detection)
        GEMINI: Gemini structured output (translation, romanization)
    """
    LRCLIB = "lrclib"
    LOCAL = "local"
    GOOGLE = "google"
    GEMINI = "gemini"


# Text-transformation services; never asked for lyrics
AI_ONLY_PROVIDERS = frozenset({Provider.GOOGLE.value, Provider.GEMINI.value})


@dataclass(frozen=True)
class FetchOptions:
    """
    Transport options forwarded to lyrics providers.

    Attributes:
        bypass_cache: Ask the provider (and any HTTP cache) for a fresh copy.
    """
    bypass_cache: bool = False


class LyricsProviderClient(Protocol):
    """Fetches lyrics for a song from one source."""

    name: str

    async def fetch(
        self,
        song: SongIdentity,
        source_order: Sequence[str],
        force_reload: bool,
        fetch_options: FetchOptions,
    ) -> LyricsDocument | None:
        """Return lyrics, or None when this source has none."""
        ...


class TranslationProviderClient(Protocol):
    """Translates one line of text."""

    async def translate(self, text: str, target_lang: str) -> str:
        ...


class BatchTranslator(Protocol):
    """Translates every line of a document in one request."""

    async def translate_lines(self, texts: list[str], target_lang: str) -> list[str]:
        """Return exactly one translation per input text, in order."""
        ...


class LineRomanizer(Protocol):
    """Romanizes a document line by line (non-structured)."""

    async def romanize(self, document: LyricsDocument) -> list[LyricLine]:
        """Return one line per input line with romanized_text filled where possible."""
        ...


class StructuredTransformer(Protocol):
    """Structured-output model endpoint."""

    async def call(self, turns: list[dict[str, Any]], schema: dict[str, Any]) -> str:
        """
        Send the conversation and return the raw JSON text of the reply.

        Args:
            turns: Conversation turns, each {'role': 'user'|'model', 'text': str}.
            schema: JSON schema the reply must follow.
        """
        ...


class LanguageDetector(Protocol):
    """Identifies the language of a text sample."""

    async def detect(self, sample_text: str) -> str | None:
        ...


class SubtitleExtractor(Protocol):
    """Builds lyrics from a video's caption track."""

    async def fetch_subtitles(self, song: SongIdentity) -> LyricsDocument | None:
        ...
