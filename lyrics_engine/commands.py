"""
Command surface of lyrics-engine.

Requests are plain dicts carrying a 'type' field naming one of the
CommandKind values. Every request gets a dict response with a 'success'
flag; failures carry a human-readable 'error' and never a raw exception.

Commands:
    FETCH_LYRICS          {song_info, force_reload}       -> {lyrics, metadata}
    TRANSLATE_LYRICS      {song_info, action, target_lang, force_reload}
                                                          -> {translated_lyrics}
    RESET_CACHE           {}                              -> {message}
    GET_CACHED_SIZE       {}                              -> {size_bytes, cache_count}
    UPLOAD_LOCAL_LYRICS   {song_info, json_lyrics}        -> {message, song_id}
    GET_LOCAL_LYRICS_LIST {}                              -> {lyrics_list}
    DELETE_LOCAL_LYRICS   {song_id}                       -> {message}
    FETCH_LOCAL_LYRICS    {song_id}                       -> {lyrics, metadata}
    UPDATE_LOCAL_LYRICS   {song_id, json_lyrics, song_info?}
                                                          -> {message, lyrics, metadata}

Request fields may also use camelCase (songInfo, forceReload, targetLang,
songId, jsonLyrics). Responses always use snake_case.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable

from lyrics_engine.core.context import EngineContext
from lyrics_engine.core.exceptions import InvalidRequestError, LyricsEngineError
from lyrics_engine.core.logger import get_logger
from lyrics_engine.core.models import LyricsDocument, SongIdentity
from lyrics_engine.lyrics.service import LyricsService
from lyrics_engine.translation.service import TranslationService


logger = get_logger(__name__)

Response = dict[str, Any]
Handler = Callable[[dict[str, Any]], Awaitable[Response]]


class CommandKind(Enum):
    """Every command the dispatcher understands."""
    FETCH_LYRICS = "FETCH_LYRICS"
    TRANSLATE_LYRICS = "TRANSLATE_LYRICS"
    RESET_CACHE = "RESET_CACHE"
    GET_CACHED_SIZE = "GET_CACHED_SIZE"
    UPLOAD_LOCAL_LYRICS = "UPLOAD_LOCAL_LYRICS"
    GET_LOCAL_LYRICS_LIST = "GET_LOCAL_LYRICS_LIST"
    DELETE_LOCAL_LYRICS = "DELETE_LOCAL_LYRICS"
    FETCH_LOCAL_LYRICS = "FETCH_LOCAL_LYRICS"
    UPDATE_LOCAL_LYRICS = "UPDATE_LOCAL_LYRICS"


def _field(message: dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in message:
        return message[snake]
    return message.get(camel, default)


def _song_from(message: dict[str, Any]) -> SongIdentity:
    raw = _field(message, "song_info", "songInfo")
    if raw is None:
        raise InvalidRequestError("Invalid message: missing song_info")
    return SongIdentity.from_dict(raw)


def _song_id_from(message: dict[str, Any]) -> str:
    song_id = _field(message, "song_id", "songId")
    if not song_id:
        raise InvalidRequestError("Invalid message: missing song_id")
    return str(song_id)


def _lyrics_from(message: dict[str, Any]) -> dict[str, Any]:
    raw = _field(message, "json_lyrics", "jsonLyrics")
    if raw is None:
        raise InvalidRequestError("Invalid message: missing json_lyrics")
    return LyricsDocument.from_dict(raw).to_dict()


class CommandDispatcher:
    """
    Routes command messages to the lyrics and translation services.

    The handler table is built once and must cover every CommandKind;
    a missing handler is a programming error reported at construction.

    Attributes:
        context: Shared engine state.
        lyrics: Lyrics service.
        translations: Translation service.
    """

    def __init__(
        self,
        context: EngineContext,
        lyrics: LyricsService,
        translations: TranslationService,
    ) -> None:
        self.context = context
        self.lyrics = lyrics
        self.translations = translations

        self._handlers: dict[CommandKind, Handler] = {
            CommandKind.FETCH_LYRICS: self._fetch_lyrics,
            CommandKind.TRANSLATE_LYRICS: self._translate_lyrics,
            CommandKind.RESET_CACHE: self._reset_cache,
            CommandKind.GET_CACHED_SIZE: self._get_cached_size,
            CommandKind.UPLOAD_LOCAL_LYRICS: self._upload_local_lyrics,
            CommandKind.GET_LOCAL_LYRICS_LIST: self._get_local_lyrics_list,
            CommandKind.DELETE_LOCAL_LYRICS: self._delete_local_lyrics,
            CommandKind.FETCH_LOCAL_LYRICS: self._fetch_local_lyrics,
            CommandKind.UPDATE_LOCAL_LYRICS: self._update_local_lyrics,
        }

        missing = [kind.value for kind in CommandKind if kind not in self._handlers]
        if missing:
            raise RuntimeError(f"No handler registered for: {', '.join(missing)}")

    async def dispatch(self, message: dict[str, Any]) -> Response:
        """
        Handle one command message.

        Args:
            message: Request dict with a 'type' field.

        Returns:
            Response dict, always with a 'success' key.
        """
        if not isinstance(message, dict) or not message.get("type"):
            return {"success": False, "error": "Invalid message: missing type"}

        try:
            kind = CommandKind(message["type"])
        except ValueError:
            logger.warning(f"Unknown message type: {message['type']}")
            return {"success": False, "error": f"Unknown message type: {message['type']}"}

        try:
            return await self._handlers[kind](message)
        except LyricsEngineError as e:
            logger.error(f"Error handling {kind.value}: {e.message}")
            return {"success": False, "error": e.message}
        except Exception as e:
            logger.exception(f"Unexpected error handling {kind.value}")
            return {"success": False, "error": str(e)}

    # =========================================================================
    # Lyrics
    # =========================================================================

    async def _fetch_lyrics(self, message: dict[str, Any]) -> Response:
        song = _song_from(message)
        force_reload = bool(_field(message, "force_reload", "forceReload", False))
        entry = await self.lyrics.get_or_fetch(song, force_reload)
        return {"success": True, "lyrics": entry.lyrics.to_dict(), "metadata": song.to_dict()}

    async def _translate_lyrics(self, message: dict[str, Any]) -> Response:
        song = _song_from(message)
        action = message.get("action", "")
        target_lang = _field(message, "target_lang", "targetLang", "") or ""
        force_reload = bool(_field(message, "force_reload", "forceReload", False))

        translated = await self.translations.get_or_fetch(song, action, target_lang, force_reload)
        return {"success": True, "translated_lyrics": translated.to_dict()}

    # =========================================================================
    # Cache
    # =========================================================================

    async def _reset_cache(self, message: dict[str, Any]) -> Response:
        self.context.clear_memory()
        await asyncio.gather(
            self.context.store.lyrics_cache.clear(),
            self.context.store.translation_cache.clear(),
        )
        logger.info("Cache reset")
        return {"success": True, "message": "Cache reset successfully"}

    async def _get_cached_size(self, message: dict[str, Any]) -> Response:
        lyrics_size, translation_size = await asyncio.gather(
            self.context.store.lyrics_cache.estimate_size(),
            self.context.store.translation_cache.estimate_size(),
        )
        total = lyrics_size + translation_size
        return {"success": True, "size_bytes": total.size_bytes, "cache_count": total.count}

    # =========================================================================
    # Local Lyrics
    # =========================================================================

    async def _upload_local_lyrics(self, message: dict[str, Any]) -> Response:
        song = _song_from(message)
        song.validate()
        lyrics = _lyrics_from(message)

        now = self.context.now()
        song_id = f"{song.title}-{song.artist}-{now}"
        await self.context.store.local_lyrics.set({
            "song_id": song_id,
            "song_info": song.to_dict(),
            "lyrics": lyrics,
            "timestamp": now,
        })
        logger.info(f"Local lyrics uploaded: {song_id}")
        return {"success": True, "message": "Local lyrics uploaded successfully", "song_id": song_id}

    async def _get_local_lyrics_list(self, message: dict[str, Any]) -> Response:
        records = await self.context.store.local_lyrics.get_all()
        lyrics_list = [
            {
                "song_id": record.get("song_id"),
                "song_info": record.get("song_info"),
                "timestamp": record.get("timestamp"),
            }
            for record in records
        ]
        return {"success": True, "lyrics_list": lyrics_list}

    async def _delete_local_lyrics(self, message: dict[str, Any]) -> Response:
        song_id = _song_id_from(message)
        await self.context.store.local_lyrics.delete(song_id)
        logger.info(f"Local lyrics deleted: {song_id}")
        return {"success": True, "message": "Local lyrics deleted successfully"}

    async def _fetch_local_lyrics(self, message: dict[str, Any]) -> Response:
        record = await self.context.store.local_lyrics.get(_song_id_from(message))
        if record is None:
            return {"success": False, "error": "Local lyrics not found"}
        return {"success": True, "lyrics": record.get("lyrics"), "metadata": record.get("song_info")}

    async def _update_local_lyrics(self, message: dict[str, Any]) -> Response:
        song_id = _song_id_from(message)
        existing = await self.context.store.local_lyrics.get(song_id)
        if existing is None:
            return {"success": False, "error": "No lyrics found for the provided songId"}

        now = self.context.now()
        raw_song = _field(message, "song_info", "songInfo")
        updated = {
            "song_id": song_id,
            "song_info": SongIdentity.from_dict(raw_song).to_dict() if raw_song else existing.get("song_info"),
            "lyrics": _lyrics_from(message),
            "timestamp": existing.get("timestamp") or now,
            "updated_at": now,
        }
        await self.context.store.local_lyrics.set(updated)
        logger.info(f"Local lyrics updated: {song_id}")
        return {
            "success": True,
            "message": "Local lyrics updated successfully",
            "lyrics": updated["lyrics"],
            "metadata": updated["song_info"],
        }
