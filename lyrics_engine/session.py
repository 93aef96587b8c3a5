"""
Player-side lyrics session.

LyricsSession is what a player integration talks to: given the current
song and the user's display mode it requests base lyrics, then the
translation and romanization it needs (concurrently), merges them into
one document and decides what can actually be displayed.

The player may switch songs while a load is awaiting. Each load captures
a generation token (the song's video id, or its local song id) and checks
it after every await; when another load has replaced the token in the
meantime the result is dropped and load() returns None.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

from lyrics_engine.commands import CommandDispatcher, CommandKind
from lyrics_engine.core.exceptions import InvalidRequestError
from lyrics_engine.core.logger import get_logger
from lyrics_engine.core.models import LyricsDocument, SongIdentity


logger = get_logger(__name__)

DISPLAY_MODES = ("none", "translate", "romanize", "both")


@dataclass
class DisplayLyrics:
    """
    Result of a session load.

    Attributes:
        song: The song that was loaded.
        lyrics: Base lyrics with translation/romanization merged in.
        mode: Display mode that the merged data supports.
    """
    song: SongIdentity
    lyrics: LyricsDocument
    mode: str


def combine_lyrics_data(
    base: LyricsDocument,
    translation: LyricsDocument | None,
    romanization: LyricsDocument | None,
) -> LyricsDocument:
    """
    Merge derived documents into a copy of the base lyrics, line by line.

    Translations are copied when present. For word-synced documents the
    romanization is applied per syllable (a syllable without romanization
    shows its original text); otherwise at line level.
    """
    combined = base.copy()
    translated_lines = translation.lines if translation else []
    romanized_lines = romanization.lines if romanization else []

    for index, line in enumerate(combined.lines):
        if index < len(translated_lines) and translated_lines[index].translated_text:
            line.translated_text = translated_lines[index].translated_text

        if index >= len(romanized_lines):
            continue
        romanized = romanized_lines[index]

        if base.type == "Word" and line.syllables and romanized.syllables:
            for sub_index, syllable in enumerate(line.syllables):
                source = romanized.syllables[sub_index] if sub_index < len(romanized.syllables) else None
                syllable.romanized_text = (source.romanized_text if source else None) or syllable.text
        elif romanized.romanized_text:
            line.romanized_text = romanized.romanized_text

    return combined


def determine_display_mode(intended: str, has_translation: bool, has_romanization: bool) -> str:
    """
    Degrade the intended mode to what the available data supports.

    'both' falls back to whichever side succeeded; any mode whose data is
    missing becomes 'none'.
    """
    if intended == "both":
        if has_translation and has_romanization:
            return "both"
        if has_translation:
            return "translate"
        if has_romanization:
            return "romanize"
    if intended == "translate" and has_translation:
        return "translate"
    if intended == "romanize" and has_romanization:
        return "romanize"
    return "none"


class LyricsSession:
    """
    Loads display-ready lyrics for the song currently playing.

    Attributes:
        dispatcher: Command surface used for every request.
        current_token: Generation token of the most recent load.
    """

    def __init__(self, dispatcher: CommandDispatcher) -> None:
        self.dispatcher = dispatcher
        self.current_token: str | None = None

    def _is_stale(self, token: str | None, song: SongIdentity, stage: str) -> bool:
        if self.current_token != token:
            logger.warning(f"Song changed during {stage}, discarding result for {song.cache_key}")
            return True
        return False

    async def _request_derived(
        self,
        song: SongIdentity,
        action: str,
        target_lang: str,
        force_reload: bool,
    ) -> dict[str, Any]:
        return await self.dispatcher.dispatch({
            "type": CommandKind.TRANSLATE_LYRICS.value,
            "song_info": song.to_dict(),
            "action": action,
            "target_lang": target_lang,
            "force_reload": force_reload,
        })

    async def load(
        self,
        song: SongIdentity,
        mode: str = "none",
        target_lang: str = "en",
        force_reload: bool = False,
    ) -> DisplayLyrics | None:
        """
        Load lyrics for a song in the given display mode.

        Args:
            song: Song now playing.
            mode: 'none', 'translate', 'romanize' or 'both'.
            target_lang: Translation target language.
            force_reload: Bypass caches for the base lyrics.

        Returns:
            DisplayLyrics, or None if the base lyrics could not be loaded or
            another load superseded this one.

        Raises:
            InvalidRequestError: If mode is not a known display mode.
        """
        if mode not in DISPLAY_MODES:
            raise InvalidRequestError(f"Unknown display mode: {mode}", details={"mode": mode})

        token = song.video_id or song.song_id
        self.current_token = token

        response = await self.dispatcher.dispatch({
            "type": CommandKind.FETCH_LYRICS.value,
            "song_info": song.to_dict(),
            "force_reload": force_reload,
        })
        if self._is_stale(token, song, "initial lyrics fetch"):
            return None

        if not response.get("success"):
            logger.warning(f"Failed to fetch original lyrics: {response.get('error')}")
            return None
        base = LyricsDocument.from_dict(response["lyrics"])

        async def skipped() -> None:
            return None

        needs_translation = mode in ("translate", "both")
        needs_romanization = mode in ("romanize", "both")

        translation_response, romanization_response = await asyncio.gather(
            self._request_derived(song, "translate", target_lang, False) if needs_translation else skipped(),
            self._request_derived(song, "romanize", target_lang, False) if needs_romanization else skipped(),
        )
        if self._is_stale(token, song, "translation fetch"):
            return None

        translation = self._derived_document(translation_response, "translation")
        romanization = self._derived_document(romanization_response, "romanization")

        return DisplayLyrics(
            song=song,
            lyrics=combine_lyrics_data(base, translation, romanization),
            mode=determine_display_mode(mode, translation is not None, romanization is not None),
        )

    @staticmethod
    def _derived_document(response: dict[str, Any] | None, label: str) -> LyricsDocument | None:
        if response is None:
            return None
        if not response.get("success") or not response.get("translated_lyrics"):
            logger.warning(f"No {label} available: {response.get('error')}")
            return None
        return LyricsDocument.from_dict(response["translated_lyrics"])
