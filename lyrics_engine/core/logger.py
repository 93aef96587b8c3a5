"""
Logging configuration for lyrics-engine.

This module sets up the logging system with multiple outputs:
    - Console: Colored, compact, tqdm-compatible output
    - log_full.log: Complete log of all events (DEBUG and above)
    - log_errors.log: Only ERROR and CRITICAL level messages
    - lyrics_failures.log: Songs for which no provider produced lyrics

The logging system follows the principle: everything to screen is also saved
to file, then filtered into specialized files.

Log File Locations:
    All log files are created in <logging.directory>/logs with a timestamp
    per run (no rotation).

Usage:
    from lyrics_engine.core.logger import setup_logging, get_logger

    setup_logging(log_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Fetching lyrics")
    logger.warning("Provider failed", extra={'provider': 'lrclib'})
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that prefixes each console line with a colored level name.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        return f"{color}{record.levelname}{Colors.RESET}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes through tqdm.write().

    The CLI may show a progress bar while a batch of songs is processed;
    writing through tqdm keeps log lines above the bar instead of
    corrupting it.

    Attributes:
        stream: The output stream (defaults to sys.stderr).
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class LyricsFailureHandler(logging.Handler):
    """
    Handler that collects songs whose lyrics could not be found.

    Listens for log records carrying the extra fields set by
    log_lyrics_failure() and writes them to lyrics_failures.log:

        Song Title - Artist Name - Album - 215
        reason: No lyrics found from any provider
        tried: lrclib, local

    Records without 'lyrics_failed_key' are ignored.

    Attributes:
        report_path: Path to the lyrics_failures.log file.
        report_file: Open file handle, set by open().
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """
        Open the report file for writing.

        Called by setup_logging() after the handler is created.
        The file is opened in write mode (overwrites existing content).
        """
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "lyrics_failed_key"):
            return

        if self.report_file is None:
            return

        try:
            key = getattr(record, "lyrics_failed_key", "Unknown")
            reason = getattr(record, "lyrics_failed_reason", "")
            providers = getattr(record, "lyrics_failed_providers", None) or []

            self.report_file.write(f"{key}\n")
            self.report_file.write(f"reason: {reason}\n")
            if providers:
                self.report_file.write(f"tried: {', '.join(providers)}\n")
            self.report_file.write("\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """
        Close the report file handle.

        Safe to call multiple times.
        """
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """
    Filter that only allows ERROR and CRITICAL level records.

    Used by the error log file handler to exclude DEBUG, INFO, and WARNING.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path, console_level: str = "INFO") -> Path:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        log_dir: Directory under which a 'logs' subdirectory is created.
        console_level: Minimum level shown on the console.

    Returns:
        Path of the logs directory for this run.

    Behavior:
        1. Create log_dir/logs if it doesn't exist
        2. Generate timestamp for this run's log files
        3. Configure root logger level to DEBUG
        4. Console handler (TqdmLoggingHandler), colored, at console_level
        5. Full log file handler at DEBUG
        6. Error log file handler (ErrorOnlyFilter)
        7. Lyrics failure report handler

    Thread Safety:
        This function is NOT thread-safe. Call it once from the main
        thread before the event loop starts.
    """
    logs_dir = log_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove any existing handlers
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(getattr(logging, console_level.upper(), logging.INFO))
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_log_path = logs_dir / f"log_full_{timestamp}.log"
    full_handler = logging.FileHandler(full_log_path, mode="w", encoding="utf-8")
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_log_path = logs_dir / f"log_errors_{timestamp}.log"
    error_handler = logging.FileHandler(error_log_path, mode="w", encoding="utf-8")
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    lyrics_failures_path = logs_dir / f"lyrics_failures_{timestamp}.log"
    lyrics_handler = LyricsFailureHandler(lyrics_failures_path)
    lyrics_handler.open()
    root_logger.addHandler(lyrics_handler)

    # aiohttp is chatty at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    return logs_dir


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.
              This creates a hierarchy like 'lyrics_engine.lyrics.service'.

    Returns:
        logging.Logger: A logger instance configured by setup_logging().

    Note:
        Loggers obtained before setup_logging() is called have no handlers
        of their own and propagate to whatever the root logger has.
    """
    return logging.getLogger(name)


def log_lyrics_failure(
    logger: logging.Logger,
    cache_key: str,
    reason: str,
    providers: list[str] | None = None
) -> None:
    """
    Log a song whose lyrics could not be retrieved.

    Logs a WARNING and attaches the extra fields that LyricsFailureHandler
    writes to lyrics_failures.log.

    Args:
        logger: The logger to use for the message.
        cache_key: The song's cache key (title - artist - album - duration).
        reason: Short human-readable reason.
        providers: Providers that were tried, in order.

    Example:
        log_lyrics_failure(
            logger,
            cache_key="Instrumental - Artist -  - 180",
            reason="No lyrics found from any provider",
            providers=["lrclib", "local"]
        )
    """
    logger.warning(
        f"No lyrics found for: {cache_key}",
        extra={
            "lyrics_failed_key": cache_key,
            "lyrics_failed_reason": reason,
            "lyrics_failed_providers": list(providers or []),
        }
    )


def shutdown_logging() -> None:
    """
    Flush, close and detach every root handler.

    Typically called in a finally block at application exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
