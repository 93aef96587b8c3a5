"""
Text helpers for lyrics-engine.

Functions:
    is_purely_latin: True if a text needs no romanization
    normalize_text: Canonical form used for text coherence checks
    normalize_language_code: "pt-BR" / "zh_Hant" -> "pt" / "zh"
    is_empty_lyrics: True for a missing document or one with no text
"""

import unicodedata

from lyrics_engine.core.models import LyricsDocument


def _is_latin_char(char: str) -> bool:
    category = unicodedata.category(char)

    # Numbers, punctuation, symbols
    if category[0] in ("N", "P", "S"):
        return True

    if char.isspace():
        return True

    # Letters and combining marks must belong to the Latin script.
    # unicodedata has no script property; Latin letters are all named "LATIN ..."
    # and combining diacritics used with them are named "COMBINING ...".
    name = unicodedata.name(char, "")
    if category[0] == "L":
        return name.startswith("LATIN")
    if category[0] == "M":
        return name.startswith("COMBINING")

    # Control and format characters (zero-width joiners etc.)
    return category in ("Cc", "Cf")


def is_purely_latin(text: str) -> bool:
    """
    Check whether text contains only Latin-script letters, digits,
    punctuation, symbols and whitespace.

    Args:
        text: Line text.

    Returns:
        True for Latin-only text (including the empty string).

    Example:
        >>> is_purely_latin("Café, déjà vu!")
        True
        >>> is_purely_latin("사랑해 baby")
        False
    """
    return all(_is_latin_char(char) for char in text)


def normalize_text(text: str) -> str:
    """
    Normalize text for coherence comparison.

    NFKC-normalizes, casefolds and removes all whitespace so that
    chunk concatenations compare equal to the line they came from
    regardless of spacing.
    """
    normalized = unicodedata.normalize("NFKC", text or "").casefold()
    return "".join(normalized.split())


def normalize_language_code(lang: str | None) -> str:
    """
    Reduce a language tag to its primary subtag.

    Args:
        lang: Tag such as 'en-US', 'pt_BR' or ' JA '.

    Returns:
        Lowercase primary subtag, or '' for empty input.
    """
    if not lang or not isinstance(lang, str):
        return ""
    return lang.strip().lower().replace("_", "-").split("-")[0]


def is_empty_lyrics(lyrics: LyricsDocument | None) -> bool:
    """True if there is no document, no lines, or only blank lines."""
    if lyrics is None or not lyrics.lines:
        return True
    return all(not line.text.strip() for line in lyrics.lines)
