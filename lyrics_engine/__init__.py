"""
lyrics-engine: cached synced lyrics with translation and romanization.

This package retrieves time-synchronized lyrics from several providers,
persists them, and derives translated and romanized variants through
external text-transformation services, while keeping redundant network
calls to a minimum and tolerating unreliable AI responses.

Architecture:
    core/           - Configuration, SQLite store, single-flight registry,
                      engine context, models, logging, exceptions
    providers/      - LRCLib, local uploads, Google Translate, Gemini and
                      YouTube caption clients behind small protocols
    lyrics/         - LyricsService: caches, local override, provider chain
    translation/    - TranslationService: version-checked translation cache,
                      pass-through, worker pool, provider fallbacks
    romanization/   - RomanizationEngine: structured-output conversation
                      with validation, selective fixes and reconstruction
    commands.py     - CommandDispatcher: the request/response command surface
    session.py      - LyricsSession: player-side merge and display mode
    app.py          - open_engine(): builds and tears down every component
    cli.py          - Command-line interface

Usage:
    Command Line:
        lyrics-engine fetch "Title" "Artist"
        lyrics-engine translate "Title" "Artist" --action romanize

    Python API:
        from lyrics_engine import load_config, open_engine

        async with open_engine(load_config()) as engine:
            response = await engine.dispatcher.dispatch({
                "type": "FETCH_LYRICS",
                "song_info": {"title": "Lemon", "artist": "Kenshi Yonezu"},
            })

Dependencies:
    - aiohttp: HTTP clients for every provider
    - rapidfuzz: Edit distance for the chunk coherence check
    - click / rich-click: CLI
    - tqdm: Progress-safe console logging
    - pyyaml: Configuration file parsing
    - python-dotenv: GEMINI_API_KEY from .env
"""

__version__ = "0.1.0"
__author__ = "lyrics-engine"
__license__ = "MIT"


from lyrics_engine.app import Engine, open_engine
from lyrics_engine.commands import CommandDispatcher, CommandKind
from lyrics_engine.core import (
    Config,
    EngineContext,
    LyricsEngineError,
    load_config,
    parse_config,
    setup_logging,
)
from lyrics_engine.session import LyricsSession

__all__ = [
    "Engine",
    "open_engine",
    "CommandDispatcher",
    "CommandKind",
    "Config",
    "EngineContext",
    "LyricsEngineError",
    "load_config",
    "parse_config",
    "setup_logging",
    "LyricsSession",
]
