"""
Provider clients for lyrics-engine.

Components:
    - base: Protocols the orchestrators depend on, Provider names
    - lrclib: LRCLibProvider (synced lyrics from lrclib.net)
    - local: LocalLyricsProvider (user uploads)
    - google: GoogleTranslateClient (translation, detection, romanization)
    - gemini: GeminiClient (structured output, batch translation)
    - youtube: YouTubeSubtitleClient (caption fallback)
"""

from lyrics_engine.providers.base import (
    AI_ONLY_PROVIDERS,
    BatchTranslator,
    FetchOptions,
    LanguageDetector,
    LineRomanizer,
    LyricsProviderClient,
    Provider,
    StructuredTransformer,
    SubtitleExtractor,
    TranslationProviderClient,
)
from lyrics_engine.providers.gemini import GeminiClient
from lyrics_engine.providers.google import GoogleTranslateClient
from lyrics_engine.providers.local import LocalLyricsProvider, find_local_record
from lyrics_engine.providers.lrclib import LRCLibProvider, parse_lrc
from lyrics_engine.providers.youtube import YouTubeSubtitleClient

__all__ = [
    # Interfaces
    "Provider",
    "AI_ONLY_PROVIDERS",
    "FetchOptions",
    "LyricsProviderClient",
    "TranslationProviderClient",
    "BatchTranslator",
    "LineRomanizer",
    "StructuredTransformer",
    "LanguageDetector",
    "SubtitleExtractor",
    # Clients
    "LRCLibProvider",
    "parse_lrc",
    "LocalLyricsProvider",
    "find_local_record",
    "GoogleTranslateClient",
    "GeminiClient",
    "YouTubeSubtitleClient",
]
