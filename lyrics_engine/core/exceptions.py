"""
Exception classes for lyrics-engine.

This module defines all custom exceptions used throughout the engine.
Each exception is designed to provide clear, actionable error messages
and to distinguish between different failure modes.

Exception Hierarchy:
    LyricsEngineError (base)
        ConfigError - Configuration file issues
        StoreError - Persistent storage I/O issues
        ProviderError - A single provider failed (recoverable)
        NotFoundError - No provider produced lyrics
        ValidationError - Transformer output never satisfied the contract
        StaleVersionError - Translation derived from outdated lyrics
        InvalidRequestError - Malformed song info or command payload
"""


class LyricsEngineError(Exception):
    """
    Base exception for all lyrics-engine errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all engine errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., cache key, provider).

    Example:
        try:
            entry = await lyrics_service.get_or_fetch(song)
        except LyricsEngineError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Useful for logging and debugging. Common keys include:
                     - 'key': Cache key involved in the error
                     - 'provider': Provider name that failed
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(LyricsEngineError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - config.yaml not found
        - config.yaml has invalid YAML syntax
        - Invalid field values (e.g., unknown cache strategy, negative TTL)

    Example:
        raise ConfigError(
            "'cache.strategy' must be one of: aggressive, moderate, none",
            details={'field': 'cache.strategy', 'value': 'forever'}
        )
    """
    pass


class StoreError(LyricsEngineError):
    """
    Raised when the persistent store fails to read or write.

    This error is always propagated to the caller. The store never
    falls back to an in-memory copy when the database is unavailable.

    Common causes:
        - Database file is locked or corrupted
        - Permission denied when reading/writing
        - Disk full
        - Stored record is not valid JSON

    Example:
        raise StoreError(
            "Failed to write record to lyrics_cache",
            details={'table': 'lyrics_cache', 'key': 'Song - Artist -  - 180'}
        )
    """
    pass


class ProviderError(LyricsEngineError):
    """
    Raised when a single external provider fails.

    This is NON-CRITICAL inside a fallback chain: the orchestrator logs it
    and moves on to the next provider. It only reaches the caller when
    a provider is used directly (e.g., by the CLI for diagnostics).

    Common causes:
        - HTTP error status or timeout
        - Unexpected response payload
        - Missing API key for the provider

    Attributes:
        provider: Name of the provider that failed (e.g., 'lrclib', 'gemini').

    Example:
        raise ProviderError(
            "LRCLib request failed with status 503",
            provider="lrclib",
            details={'status': 503}
        )
    """

    def __init__(
        self,
        message: str,
        provider: str = "",
        details: dict | None = None
    ) -> None:
        """
        Initialize the provider error.

        Args:
            message: Human-readable error description.
            provider: Name of the provider that failed.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.provider = provider


class NotFoundError(LyricsEngineError):
    """
    Raised when no lyrics could be produced for a song.

    This is the terminal failure of the lyrics provider chain, and is also
    raised by the translation layer when the base lyrics are empty.

    Example:
        raise NotFoundError(
            "No lyrics found from any provider",
            details={'key': 'Song - Artist - Album - 200'}
        )
    """
    pass


class ValidationError(LyricsEngineError):
    """
    Raised when the structured transformer never produced a valid response.

    The romanization engine retries internally (selective fix, full retry,
    fresh conversation) and raises this only once the attempt budget is
    exhausted.

    Attributes:
        errors: Violation messages reported by the final attempt.

    Example:
        raise ValidationError(
            "Romanization failed after 5 attempts",
            errors=["Line 2: chunk count mismatch (expected 3, got 2)"]
        )
    """

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        details: dict | None = None
    ) -> None:
        """
        Initialize the validation error.

        Args:
            message: Human-readable error description.
            errors: List of violation messages from the final attempt.
            details: Optional additional context.
        """
        super().__init__(message, details)
        self.errors = list(errors or [])


class StaleVersionError(LyricsEngineError):
    """
    Signals a cached translation derived from an older lyrics version.

    This is never surfaced to callers. The translation service raises and
    catches it internally so the purge of the stale record is logged
    alongside both versions.

    Example:
        raise StaleVersionError(
            "Translation cache is stale",
            details={'cached_version': 1700000000000, 'current_version': 1700000500000}
        )
    """
    pass


class InvalidRequestError(LyricsEngineError):
    """
    Raised when a request is malformed.

    Common causes:
        - Song info missing title or artist
        - Unknown translation action
        - Command payload missing a required field

    Example:
        raise InvalidRequestError(
            "Invalid song info: title and artist are required",
            details={'song_info': {'title': '', 'artist': 'Artist'}}
        )
    """
    pass
