"""
Engine assembly.

open_engine() builds every component from a Config and tears them down
on exit:

    aiohttp.ClientSession
      -> LRCLib, local, Google, Gemini and YouTube caption clients
    PersistentStore + InFlightRegistry -> EngineContext
      -> LyricsService -> TranslationService (+ RomanizationEngine)
      -> CommandDispatcher

Usage:
    async with open_engine(config) as engine:
        response = await engine.dispatcher.dispatch({"type": "RESET_CACHE"})
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import aiohttp

from lyrics_engine.commands import CommandDispatcher
from lyrics_engine.core.config import Config
from lyrics_engine.core.context import EngineContext
from lyrics_engine.core.logger import get_logger
from lyrics_engine.core.store import PersistentStore
from lyrics_engine.lyrics.service import LyricsService
from lyrics_engine.providers.gemini import GeminiClient
from lyrics_engine.providers.google import GoogleTranslateClient
from lyrics_engine.providers.local import LocalLyricsProvider
from lyrics_engine.providers.lrclib import LRCLibProvider
from lyrics_engine.providers.youtube import YouTubeSubtitleClient
from lyrics_engine.romanization.engine import RomanizationEngine
from lyrics_engine.session import LyricsSession
from lyrics_engine.translation.service import TranslationService


logger = get_logger(__name__)


@dataclass
class Engine:
    """Assembled engine components."""
    context: EngineContext
    lyrics: LyricsService
    translations: TranslationService
    dispatcher: CommandDispatcher
    session: LyricsSession


@asynccontextmanager
async def open_engine(config: Config) -> AsyncIterator[Engine]:
    """
    Build an engine for config and close its resources on exit.

    Gemini is wired in only when an API key is configured; without it
    batch translation and structured romanization are unavailable and
    the Google paths are used.
    """
    store = PersistentStore(config.storage.database)
    context = EngineContext(config, store)

    try:
        async with aiohttp.ClientSession() as http:
            google = GoogleTranslateClient(http)
            gemini = None
            if config.gemini.enabled:
                gemini = GeminiClient(
                    http,
                    api_key=config.gemini.api_key,
                    model=config.gemini.model,
                    romanization_model=config.gemini.romanization_model,
                    translation_prompt=config.gemini.custom_translate_prompt,
                )
            else:
                logger.debug("No Gemini API key configured, Gemini features disabled")

            lyrics = LyricsService(
                context,
                providers={
                    LRCLibProvider.name: LRCLibProvider(http),
                    LocalLyricsProvider.name: LocalLyricsProvider(store.local_lyrics),
                },
                subtitles=YouTubeSubtitleClient(http),
            )
            translations = TranslationService(
                context,
                lyrics,
                line_translator=google,
                detector=google,
                batch_translator=gemini,
                line_romanizer=google,
                engine=(
                    RomanizationEngine(gemini, config.romanization, config.gemini.custom_romanize_prompt)
                    if gemini else None
                ),
            )
            dispatcher = CommandDispatcher(context, lyrics, translations)

            yield Engine(
                context=context,
                lyrics=lyrics,
                translations=translations,
                dispatcher=dispatcher,
                session=LyricsSession(dispatcher),
            )
    finally:
        context.close()
