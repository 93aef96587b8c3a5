"""
Translation and romanization of resolved lyrics.

Usage:
    from lyrics_engine.translation import TranslationService

    translated = await service.get_or_fetch(song, "translate", "en")
"""

from lyrics_engine.translation.service import (
    ACTIONS,
    TranslationService,
    has_prebuilt_romanization,
    is_null_effect,
)

__all__ = [
    "ACTIONS",
    "TranslationService",
    "has_prebuilt_romanization",
    "is_null_effect",
]
