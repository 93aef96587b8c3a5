"""
Configuration management for lyrics-engine.

This module handles loading, validating, and providing access to the
engine configuration stored in config.yaml.

The configuration file contains:
    - Location of the SQLite cache database
    - Cache strategy and the TTL of each strategy tier
    - Lyrics provider preference order and exclusions
    - Translation and romanization provider selection
    - Gemini credentials and model names
    - Retry budget and thresholds of the romanization conversation
    - Log directory

Every section is optional. A missing section (or a missing config.yaml
when no explicit path is given to the CLI) yields the defaults below.

Environment:
    GEMINI_API_KEY is read from the environment (or a .env file loaded
    with python-dotenv) when gemini.api_key is not set in the YAML.

Example config.yaml:
    storage:
      database: "~/.lyrics-engine/cache.db"

    cache:
      strategy: aggressive      # aggressive | moderate | none
      ttl:
        aggressive: 604800      # seconds (7 days)
        moderate: 7200          # seconds (2 hours)

    lyrics:
      provider: lrclib
      source_order: ["lyricsplus", "musixmatch", "apple"]
      excluded_providers: []

    translation:
      provider: google          # google | gemini
      romanization_provider: gemini
      override_target: null     # e.g. "en" to force every translation target

    gemini:
      api_key: null
      model: gemini-2.0-flash
      romanization_model: gemini-2.0-flash
      custom_translate_prompt: null    # replaces the translation instructions
      custom_romanize_prompt: null     # replaces the romanization instructions

    romanization:
      max_retries: 5
      coherence_threshold: 0.2
      same_error_limit: 3
      selective_fix_ratio: 0.8

    logging:
      directory: "~/.lyrics-engine"
      level: INFO
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from lyrics_engine.core.exceptions import ConfigError


load_dotenv()


# Default configuration file name (looked up in the current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_HOME = Path("~/.lyrics-engine")
DEFAULT_DATABASE_NAME = "cache.db"

CACHE_STRATEGIES = ("aggressive", "moderate", "none")
DEFAULT_CACHE_STRATEGY = "aggressive"
DEFAULT_TTL_SECONDS = {
    "aggressive": 7 * 24 * 60 * 60,
    "moderate": 2 * 60 * 60,
}

TRANSLATION_PROVIDERS = ("google", "gemini")
DEFAULT_LYRICS_PROVIDER = "lrclib"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class StorageConfig:
    """
    Persistent storage configuration.

    Attributes:
        database: Absolute path of the SQLite file holding the lyrics cache,
                  the translation cache and the local lyrics collection.
                  Path expansion is performed (~ is expanded to home directory).
    """
    database: Path


@dataclass(frozen=True)
class CacheConfig:
    """
    Cache strategy configuration.

    Attributes:
        strategy: Active TTL tier: 'aggressive', 'moderate' or 'none'.
                  'none' disables persistent lyrics cache reads and writes
                  and asks providers to bypass their own caches.
        ttl_seconds: Maximum cache age per tier, in seconds.
    """
    strategy: str
    ttl_seconds: dict[str, int]

    def ttl_ms(self, strategy: str | None = None) -> int:
        """
        Return the TTL of a strategy in milliseconds.

        Unknown strategy names resolve to the aggressive tier. The 'none'
        tier has a TTL of 0, so nothing is ever considered fresh.

        Args:
            strategy: Tier name. Defaults to the configured strategy.

        Returns:
            TTL in milliseconds.
        """
        name = strategy or self.strategy
        if name == "none":
            return 0
        seconds = self.ttl_seconds.get(name, self.ttl_seconds["aggressive"])
        return seconds * 1000


@dataclass(frozen=True)
class LyricsConfig:
    """
    Lyrics provider chain configuration.

    Attributes:
        provider: Preferred provider, tried first.
        source_order: Opaque source preference list forwarded to every
                      provider client (e.g. upstream sources of an aggregator).
        excluded_providers: Providers never tried in the fallback chain.
    """
    provider: str
    source_order: tuple[str, ...]
    excluded_providers: tuple[str, ...]


@dataclass(frozen=True)
class TranslationConfig:
    """
    Translation and romanization provider selection.

    Attributes:
        provider: Translation provider ('google' or 'gemini').
        romanization_provider: Romanization provider ('google' or 'gemini').
        override_target: When set, replaces every requested target language.
    """
    provider: str
    romanization_provider: str
    override_target: str | None


@dataclass(frozen=True)
class GeminiConfig:
    """
    Gemini credentials and model selection.

    Attributes:
        api_key: API key, or None when Gemini is not configured.
        model: Model used for batch translation.
        romanization_model: Model used by the romanization conversation.
        custom_translate_prompt: Instructions used instead of the built-in
                                 batch translation prompt; the lyrics are
                                 still appended.
        custom_romanize_prompt: Instructions used instead of the built-in
                                initial romanization prompt.
    """
    api_key: str | None
    model: str
    romanization_model: str
    custom_translate_prompt: str | None = None
    custom_romanize_prompt: str | None = None

    @property
    def enabled(self) -> bool:
        """True if an API key is available."""
        return bool(self.api_key)


@dataclass(frozen=True)
class RomanizationConfig:
    """
    Bounds and thresholds of the romanization repair conversation.

    Attributes:
        max_retries: Maximum number of transformer attempts.
        coherence_threshold: Largest accepted normalized edit distance between
                             a line's text and its concatenated chunks (0.2 = 20%).
        same_error_limit: Consecutive identical first errors that trigger a
                          fresh conversation.
        selective_fix_ratio: A selective fix is requested only when fewer than
                             this fraction of lines is flagged.
    """
    max_retries: int = 5
    coherence_threshold: float = 0.2
    same_error_limit: int = 3
    selective_fix_ratio: float = 0.8


@dataclass(frozen=True)
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        directory: Directory under which the logs/ folder is created.
        level: Console log level.
    """
    directory: Path
    level: str


@dataclass(frozen=True)
class Config:
    """
    Complete engine configuration.

    This is the main configuration object that aggregates all configuration
    sections. It is created by load_config() or parse_config() and should be
    treated as immutable (frozen dataclass).

    Example:
        config = load_config()
        print(f"Cache database: {config.storage.database}")
        print(f"Strategy: {config.cache.strategy}")
    """
    storage: StorageConfig
    cache: CacheConfig
    lyrics: LyricsConfig
    translation: TranslationConfig
    gemini: GeminiConfig
    romanization: RomanizationConfig
    logging: LoggingConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the config file is not found, has invalid YAML syntax,
                     or contains invalid values.

    Example:
        try:
            config = load_config()
        except ConfigError as e:
            print(f"Configuration error: {e.message}")
            sys.exit(1)
    """
    # Resolve config path
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    # Check file exists
    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    # Read file content
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # Parse YAML
    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file means "all defaults"
    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return parse_config(raw_config)


def parse_config(raw_config: dict[str, Any]) -> Config:
    """
    Build a Config from an already-parsed dictionary.

    Every section is optional and defaults are applied per field.

    Args:
        raw_config: Dictionary shaped like config.yaml.

    Returns:
        Config: Validated configuration.

    Raises:
        ConfigError: If a section is not a dictionary or a value is invalid.
    """
    _validate_config(raw_config)

    return Config(
        storage=_parse_storage_config(raw_config.get("storage")),
        cache=_parse_cache_config(raw_config.get("cache")),
        lyrics=_parse_lyrics_config(raw_config.get("lyrics")),
        translation=_parse_translation_config(raw_config.get("translation")),
        gemini=_parse_gemini_config(raw_config.get("gemini")),
        romanization=_parse_romanization_config(raw_config.get("romanization")),
        logging=_parse_logging_config(raw_config.get("logging")),
    )


def _validate_config(raw_config: dict[str, Any]) -> None:
    """
    Check that every present section is a dictionary.

    Args:
        raw_config: Dictionary parsed from config.yaml.

    Raises:
        ConfigError: If a section has the wrong type.
    """
    sections = [
        "storage", "cache", "lyrics", "translation",
        "gemini", "romanization", "logging",
    ]

    for section in sections:
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )


def _expand_path(value: Any, field: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"'{field}' must be a non-empty string",
            details={"field": field}
        )
    return Path(value.strip()).expanduser().resolve()


def _parse_storage_config(section: dict[str, Any] | None) -> StorageConfig:
    """
    Parse the storage section.

    Default database: ~/.lyrics-engine/cache.db
    """
    section = section or {}
    raw_database = section.get("database")

    if raw_database is None:
        database = (DEFAULT_HOME / DEFAULT_DATABASE_NAME).expanduser().resolve()
    else:
        database = _expand_path(raw_database, "storage.database")

    return StorageConfig(database=database)


def _parse_cache_config(section: dict[str, Any] | None) -> CacheConfig:
    """
    Parse the cache section.

    Args:
        section: The 'cache' section from config.yaml, or None.

    Returns:
        CacheConfig with the strategy and a TTL for every tier.

    Raises:
        ConfigError: If the strategy is unknown or a TTL is not a
                     positive integer.
    """
    section = section or {}

    strategy = section.get("strategy", DEFAULT_CACHE_STRATEGY)
    if strategy not in CACHE_STRATEGIES:
        raise ConfigError(
            f"'cache.strategy' must be one of: {', '.join(CACHE_STRATEGIES)}",
            details={"field": "cache.strategy", "value": strategy}
        )

    ttl_seconds = dict(DEFAULT_TTL_SECONDS)
    raw_ttl = section.get("ttl")
    if raw_ttl is not None:
        if not isinstance(raw_ttl, dict):
            raise ConfigError(
                "'cache.ttl' must be a dictionary of tier -> seconds",
                details={"field": "cache.ttl"}
            )
        for tier, seconds in raw_ttl.items():
            if tier not in DEFAULT_TTL_SECONDS:
                raise ConfigError(
                    f"Unknown cache tier in 'cache.ttl': {tier}",
                    details={"field": f"cache.ttl.{tier}"}
                )
            if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds < 1:
                raise ConfigError(
                    f"'cache.ttl.{tier}' must be a positive integer (seconds)",
                    details={"field": f"cache.ttl.{tier}", "value": seconds}
                )
            ttl_seconds[tier] = seconds

    return CacheConfig(strategy=strategy, ttl_seconds=ttl_seconds)


def _parse_string_list(value: Any, field: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(
            f"'{field}' must be a list of strings",
            details={"field": field}
        )
    return tuple(v.strip().lower() for v in value if v.strip())


def _parse_lyrics_config(section: dict[str, Any] | None) -> LyricsConfig:
    """
    Parse the lyrics section.

    The preferred provider is not checked against the known providers here:
    an unknown preference falls back to the default at chain build time.
    """
    section = section or {}

    provider = section.get("provider", DEFAULT_LYRICS_PROVIDER)
    if not isinstance(provider, str) or not provider.strip():
        raise ConfigError(
            "'lyrics.provider' must be a non-empty string",
            details={"field": "lyrics.provider"}
        )

    # source_order is forwarded verbatim to providers, so case is kept
    raw_order = section.get("source_order")
    if raw_order is not None and (
        not isinstance(raw_order, list) or not all(isinstance(v, str) for v in raw_order)
    ):
        raise ConfigError(
            "'lyrics.source_order' must be a list of strings",
            details={"field": "lyrics.source_order"}
        )

    return LyricsConfig(
        provider=provider.strip().lower(),
        source_order=tuple(raw_order or ()),
        excluded_providers=_parse_string_list(
            section.get("excluded_providers"), "lyrics.excluded_providers"
        ),
    )


def _parse_translation_config(section: dict[str, Any] | None) -> TranslationConfig:
    """
    Parse the translation section.

    Raises:
        ConfigError: If a provider is not 'google' or 'gemini', or the
                     override target is not a string.
    """
    section = section or {}

    values = {}
    for field in ("provider", "romanization_provider"):
        value = section.get(field, "google")
        if value not in TRANSLATION_PROVIDERS:
            raise ConfigError(
                f"'translation.{field}' must be one of: {', '.join(TRANSLATION_PROVIDERS)}",
                details={"field": f"translation.{field}", "value": value}
            )
        values[field] = value

    override_target = section.get("override_target")
    if override_target is not None:
        if not isinstance(override_target, str):
            raise ConfigError(
                "'translation.override_target' must be a language code or null",
                details={"field": "translation.override_target"}
            )
        override_target = override_target.strip() or None

    return TranslationConfig(
        provider=values["provider"],
        romanization_provider=values["romanization_provider"],
        override_target=override_target,
    )


def _parse_gemini_config(section: dict[str, Any] | None) -> GeminiConfig:
    """
    Parse the gemini section, filling the key from GEMINI_API_KEY.
    """
    section = section or {}

    api_key = section.get("api_key")
    if api_key is not None and not isinstance(api_key, str):
        raise ConfigError(
            "'gemini.api_key' must be a string or null",
            details={"field": "gemini.api_key"}
        )
    if not api_key:
        api_key = os.environ.get("GEMINI_API_KEY") or None

    model = section.get("model", DEFAULT_GEMINI_MODEL)
    romanization_model = section.get("romanization_model", model)
    for field, value in (("model", model), ("romanization_model", romanization_model)):
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(
                f"'gemini.{field}' must be a non-empty string",
                details={"field": f"gemini.{field}"}
            )

    prompts = {}
    for field in ("custom_translate_prompt", "custom_romanize_prompt"):
        value = section.get(field)
        if value is not None and not isinstance(value, str):
            raise ConfigError(
                f"'gemini.{field}' must be a string or null",
                details={"field": f"gemini.{field}"}
            )
        # blank means the built-in prompt
        prompts[field] = value.strip() if value and value.strip() else None

    return GeminiConfig(
        api_key=api_key.strip() if api_key else None,
        model=model.strip(),
        romanization_model=romanization_model.strip(),
        custom_translate_prompt=prompts["custom_translate_prompt"],
        custom_romanize_prompt=prompts["custom_romanize_prompt"],
    )


def _parse_romanization_config(section: dict[str, Any] | None) -> RomanizationConfig:
    """
    Parse the romanization section.

    Raises:
        ConfigError: If a count is not a positive integer or a ratio is
                     outside (0, 1].
    """
    section = section or {}
    defaults = RomanizationConfig()

    counts = {}
    for field in ("max_retries", "same_error_limit"):
        value = section.get(field, getattr(defaults, field))
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigError(
                f"'romanization.{field}' must be a positive integer",
                details={"field": f"romanization.{field}", "value": value}
            )
        counts[field] = value

    ratios = {}
    for field in ("coherence_threshold", "selective_fix_ratio"):
        value = section.get(field, getattr(defaults, field))
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 < value <= 1:
            raise ConfigError(
                f"'romanization.{field}' must be a number in (0, 1]",
                details={"field": f"romanization.{field}", "value": value}
            )
        ratios[field] = float(value)

    return RomanizationConfig(
        max_retries=counts["max_retries"],
        coherence_threshold=ratios["coherence_threshold"],
        same_error_limit=counts["same_error_limit"],
        selective_fix_ratio=ratios["selective_fix_ratio"],
    )


def _parse_logging_config(section: dict[str, Any] | None) -> LoggingConfig:
    """
    Parse the logging section.

    Default directory: ~/.lyrics-engine, default level: INFO.
    """
    section = section or {}

    raw_directory = section.get("directory")
    if raw_directory is None:
        directory = DEFAULT_HOME.expanduser().resolve()
    else:
        directory = _expand_path(raw_directory, "logging.directory")

    level = str(section.get("level", "INFO")).upper()
    if level not in LOG_LEVELS:
        raise ConfigError(
            f"'logging.level' must be one of: {', '.join(LOG_LEVELS)}",
            details={"field": "logging.level", "value": level}
        )

    return LoggingConfig(directory=directory, level=level)
