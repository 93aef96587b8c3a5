"""
Data models shared across lyrics-engine.

This module defines the typed records passed between the orchestrators,
the persistent store and the command surface:

    SongIdentity      - Who we're looking up; derives the cache key
    LyricSyllable     - One timed word/syllable of a word-synced line
    LyricLine         - One timed line with optional derived text
    LyricsDocument    - Ordered lines plus free-form metadata
    LyricsCacheEntry  - A document and its version token
    TranslationRecord - A derived document pinned to a lyrics version
    TranslationMeta   - How a derived document was produced
    StructuredLine    - Romanization engine input unit
    PlanEntry         - Maps an original line to passthrough or an api slot

Documents serialize to plain dicts with snake_case keys. from_dict()
also accepts the camelCase keys used by browser-side collaborators
(songInfo, syllabus, translatedText, ...) so records uploaded from there
load without conversion.

Line order is playback order. No transformation in this package reorders
lines; every derived document has exactly as many lines as its source.
"""

import copy
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from lyrics_engine.core.exceptions import InvalidRequestError


def _pick(data: dict[str, Any], *names: str, default: Any = None) -> Any:
    """Return the first present key among names (snake_case first)."""
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


@dataclass
class SongIdentity:
    """
    Identity of a song as reported by the player.

    Equality of two identities is equality of their cache keys, so two
    instances built from the same player state compare equal even when
    their optional transport fields differ.

    Attributes:
        title: Track title (required).
        artist: Artist name (required).
        album: Album name, may be empty.
        duration: Track duration in seconds, or None if unknown.
        song_id: Id of a user-uploaded local lyrics record, if any.
        video_id: Video id when playback comes from a video source.
        subtitle: Caption track descriptor from the player, used as the
                  last-resort lyrics source.
    """
    title: str
    artist: str
    album: str = ""
    duration: float | None = None
    song_id: str | None = None
    video_id: str | None = None
    subtitle: dict[str, Any] | None = None

    @property
    def cache_key(self) -> str:
        """
        Deterministic key: "{title} - {artist} - {album} - {duration}".

        Missing parts are rendered as empty strings.
        """
        duration = self.duration
        if isinstance(duration, float) and duration.is_integer():
            duration = int(duration)
        duration_part = "" if duration in (None, 0) else str(duration)
        return f"{self.title or ''} - {self.artist or ''} - {self.album or ''} - {duration_part}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SongIdentity):
            return NotImplemented
        return self.cache_key == other.cache_key

    def __hash__(self) -> int:
        return hash(self.cache_key)

    def validate(self) -> None:
        """
        Raises:
            InvalidRequestError: If title or artist is missing.
        """
        if not self.title or not self.artist:
            raise InvalidRequestError(
                "Invalid song info: title and artist are required",
                details={"song_info": self.to_dict()}
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SongIdentity":
        """
        Build an identity from a request payload.

        Raises:
            InvalidRequestError: If data is not a dictionary.
        """
        if not isinstance(data, dict):
            raise InvalidRequestError(
                "Invalid song info: expected an object",
                details={"song_info": data}
            )
        duration = _pick(data, "duration")
        if duration is not None:
            try:
                duration = float(duration)
            except (TypeError, ValueError):
                duration = None
        return cls(
            title=str(_pick(data, "title", default="")).strip(),
            artist=str(_pick(data, "artist", default="")).strip(),
            album=str(_pick(data, "album", default="")).strip(),
            duration=duration,
            song_id=_pick(data, "song_id", "songId"),
            video_id=_pick(data, "video_id", "videoId"),
            subtitle=_pick(data, "subtitle"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration,
            "song_id": self.song_id,
            "video_id": self.video_id,
            "subtitle": self.subtitle,
        }


@dataclass
class LyricSyllable:
    """A timed fragment of a word-synced line. Times are in milliseconds."""
    text: str
    start: float = 0
    end: float = 0
    romanized_text: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LyricSyllable":
        return cls(
            text=str(_pick(data, "text", default="")),
            start=_pick(data, "start", "time", default=0),
            end=_pick(data, "end", default=0),
            romanized_text=_pick(data, "romanized_text", "romanizedText"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"text": self.text, "start": self.start, "end": self.end}
        if self.romanized_text is not None:
            result["romanized_text"] = self.romanized_text
        return result


@dataclass
class LyricLine:
    """
    One timed lyric line.

    Attributes:
        text: Original line text.
        start: Start time in milliseconds.
        end: End time in milliseconds.
        syllables: Word/syllable timing for word-synced documents.
        translated_text: Translation, once derived.
        romanized_text: Romanization, once derived.
    """
    text: str
    start: float = 0
    end: float = 0
    syllables: list[LyricSyllable] = field(default_factory=list)
    translated_text: str | None = None
    romanized_text: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LyricLine":
        raw_syllables = _pick(data, "syllables", "syllabus", default=[]) or []
        return cls(
            text=str(_pick(data, "text", default="")),
            start=_pick(data, "start", "startTime", default=0),
            end=_pick(data, "end", "endTime", default=0),
            syllables=[LyricSyllable.from_dict(s) for s in raw_syllables],
            translated_text=_pick(data, "translated_text", "translatedText"),
            romanized_text=_pick(data, "romanized_text", "romanizedText"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"text": self.text, "start": self.start, "end": self.end}
        if self.syllables:
            result["syllables"] = [s.to_dict() for s in self.syllables]
        if self.translated_text is not None:
            result["translated_text"] = self.translated_text
        if self.romanized_text is not None:
            result["romanized_text"] = self.romanized_text
        return result


@dataclass
class LyricsDocument:
    """
    An ordered lyrics document.

    Attributes:
        lines: Lines in playback order.
        type: 'Line' for line-synced, 'Word' for word-synced lyrics.
        metadata: Free-form provider metadata (source, fetched_at, ...).
        translation_meta: Set on derived documents; see TranslationService.
    """
    lines: list[LyricLine] = field(default_factory=list)
    type: str = "Line"
    metadata: dict[str, Any] = field(default_factory=dict)
    translation_meta: dict[str, Any] | None = None

    @property
    def has_syllables(self) -> bool:
        """True if any line carries syllable timing."""
        return any(line.syllables for line in self.lines)

    def copy(self) -> "LyricsDocument":
        """Deep structural copy; the result shares no mutable state."""
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LyricsDocument":
        """
        Build a document from a stored or uploaded dict.

        Raises:
            InvalidRequestError: If data is not a dict or has no line list.
        """
        if not isinstance(data, dict):
            raise InvalidRequestError(
                "Invalid lyrics: expected an object",
                details={"lyrics": data}
            )
        raw_lines = _pick(data, "lines", "data", default=[])
        if not isinstance(raw_lines, list):
            raise InvalidRequestError(
                "Invalid lyrics: 'lines' must be a list",
                details={"lyrics_type": type(raw_lines).__name__}
            )
        return cls(
            lines=[LyricLine.from_dict(line) for line in raw_lines],
            type=str(_pick(data, "type", default="Line")),
            metadata=dict(_pick(data, "metadata", default={}) or {}),
            translation_meta=_pick(data, "translation_meta", "translationMeta"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.type,
            "lines": [line.to_dict() for line in self.lines],
            "metadata": copy.deepcopy(self.metadata),
        }
        if self.translation_meta is not None:
            result["translation_meta"] = copy.deepcopy(self.translation_meta)
        return result


@dataclass
class LyricsCacheEntry:
    """
    Resolved lyrics plus their version token.

    The version is the fetch timestamp in milliseconds for provider
    results, or the upload timestamp (or song id) for local lyrics.
    """
    lyrics: LyricsDocument
    version: int | str


@dataclass
class TranslationRecord:
    """
    A derived document and the lyrics version it was derived from.

    Only valid while original_version equals the current base version.
    """
    translated_lyrics: LyricsDocument
    original_version: int | str

    def to_record(self, key: str) -> dict[str, Any]:
        return {
            "key": key,
            "translated_lyrics": self.translated_lyrics.to_dict(),
            "original_version": self.original_version,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "TranslationRecord":
        return cls(
            translated_lyrics=LyricsDocument.from_dict(record["translated_lyrics"]),
            original_version=record["original_version"],
        )


@dataclass
class TranslationMeta:
    """
    Provenance of a derived document, stored as its translation_meta.

    Attributes:
        action: 'translate' or 'romanize'.
        provider: 'google', 'gemini', 'pass-through' or 'prebuilt'.
        target_lang: Normalized target actually used.
        requested_target_lang: Target as requested (before any override).
        source_lang: Detected source language, 'auto' if unknown.
        fallback_used: True if the primary provider failed or had no effect.
        skipped_reason: Why no transformation ran, if it didn't.
        failed_lines: Indices of lines left untranslated after a line failure.
        generated_at: Creation time in milliseconds.
    """
    action: str
    provider: str
    target_lang: str = ""
    requested_target_lang: str = ""
    source_lang: str | None = None
    fallback_used: bool = False
    skipped_reason: str | None = None
    failed_lines: list[int] = field(default_factory=list)
    generated_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class StructuredChunk:
    """A sub-text fragment of a structured line (one per syllable)."""
    text: str
    chunk_index: int

    def to_payload(self) -> dict[str, Any]:
        return {"text": self.text, "chunkIndex": self.chunk_index}


@dataclass
class StructuredLine:
    """
    Transformer input unit.

    original_line_index is the position in the deduplicated api list,
    which is what the transformer must echo back.
    """
    text: str
    original_line_index: int
    chunk: list[StructuredChunk] | None = None

    @property
    def has_chunks(self) -> bool:
        return bool(self.chunk)

    @property
    def content_key(self) -> tuple[str, tuple[str, ...] | None]:
        """Dedup key built from the text and the chunk texts."""
        if not self.chunk:
            return (self.text, None)
        return (self.text, tuple(c.text for c in self.chunk))

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "text": self.text,
            "original_line_index": self.original_line_index,
        }
        if self.chunk:
            payload["chunk"] = [c.to_payload() for c in self.chunk]
        return payload


@dataclass(frozen=True)
class PlanEntry:
    """
    Reconstruction plan entry for one original line.

    Attributes:
        kind: 'passthrough' (line kept as-is) or 'api' (filled from the response).
        original_index: Position in the original document.
        api_index: Slot in the deduplicated structured list; None for passthrough.
    """
    kind: Literal["passthrough", "api"]
    original_index: int
    api_index: int | None = None
