"""
Utility functions for lyrics-engine.
"""

from lyrics_engine.utils.pool import map_bounded
from lyrics_engine.utils.text import (
    is_empty_lyrics,
    is_purely_latin,
    normalize_language_code,
    normalize_text,
)

__all__ = [
    "is_purely_latin",
    "normalize_text",
    "normalize_language_code",
    "is_empty_lyrics",
    "map_bounded",
]
