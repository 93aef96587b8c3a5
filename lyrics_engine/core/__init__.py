"""
Core module for lyrics-engine.

This module provides the foundational components used throughout the engine:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - store: SQLite-backed persistent collections
    - inflight: Single-flight registry of pending fetches
    - context: EngineContext tying the above together
    - logger: Logging system with multiple outputs

Usage:
    from lyrics_engine.core import (
        Config, load_config,
        PersistentStore, EngineContext,
        setup_logging, get_logger,
        LyricsEngineError, ConfigError, StoreError
    )
"""

from lyrics_engine.core.config import (
    CONFIG_FILENAME,
    CacheConfig,
    Config,
    GeminiConfig,
    LoggingConfig,
    LyricsConfig,
    RomanizationConfig,
    StorageConfig,
    TranslationConfig,
    load_config,
    parse_config,
)
from lyrics_engine.core.context import EngineContext, now_ms
from lyrics_engine.core.exceptions import (
    ConfigError,
    InvalidRequestError,
    LyricsEngineError,
    NotFoundError,
    ProviderError,
    StaleVersionError,
    StoreError,
    ValidationError,
)
from lyrics_engine.core.inflight import InFlightRegistry
from lyrics_engine.core.logger import (
    get_logger,
    log_lyrics_failure,
    setup_logging,
    shutdown_logging,
)
from lyrics_engine.core.store import PersistentStore, SizeEstimate

__all__ = [
    # Config
    "CONFIG_FILENAME",
    "Config",
    "StorageConfig",
    "CacheConfig",
    "LyricsConfig",
    "TranslationConfig",
    "GeminiConfig",
    "RomanizationConfig",
    "LoggingConfig",
    "load_config",
    "parse_config",
    # State
    "PersistentStore",
    "SizeEstimate",
    "InFlightRegistry",
    "EngineContext",
    "now_ms",
    # Exceptions
    "LyricsEngineError",
    "ConfigError",
    "StoreError",
    "ProviderError",
    "NotFoundError",
    "ValidationError",
    "StaleVersionError",
    "InvalidRequestError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_lyrics_failure",
    "shutdown_logging",
]
