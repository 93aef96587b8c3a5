"""
User-uploaded lyrics.

Local lyrics records live in the local_lyrics collection:

    {song_id, song_info, lyrics, timestamp}

They are matched to a song by exact song_id, or failing that by a
case-insensitive title and artist match against the stored song_info.
"""

from typing import Any, Sequence

from lyrics_engine.core.models import LyricsDocument, SongIdentity
from lyrics_engine.core.store import Collection
from lyrics_engine.providers.base import FetchOptions, Provider


def _same_text(a: Any, b: Any) -> bool:
    return str(a or "").strip().casefold() == str(b or "").strip().casefold()


async def find_local_record(collection: Collection, song: SongIdentity) -> dict[str, Any] | None:
    """
    Find the local lyrics record for a song.

    Args:
        collection: The local_lyrics collection.
        song: Song to look up.

    Returns:
        The record matching song.song_id, else the first record whose
        song_info has the same title and artist, else None.
    """
    if song.song_id:
        record = await collection.get(song.song_id)
        if record is not None:
            return record

    for record in await collection.get_all():
        info = record.get("song_info") or {}
        if _same_text(info.get("title"), song.title) and _same_text(info.get("artist"), song.artist):
            return record

    return None


class LocalLyricsProvider:
    """Chain member serving lyrics from the local_lyrics collection."""

    name = Provider.LOCAL.value

    def __init__(self, collection: Collection) -> None:
        self._collection = collection

    async def fetch(
        self,
        song: SongIdentity,
        source_order: Sequence[str],
        force_reload: bool,
        fetch_options: FetchOptions,
    ) -> LyricsDocument | None:
        record = await find_local_record(self._collection, song)
        if record is None or not record.get("lyrics"):
            return None
        document = LyricsDocument.from_dict(record["lyrics"])
        document.metadata.setdefault("source", self.name)
        return document
