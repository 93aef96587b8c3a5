"""
Lyrics resolution for lyrics-engine.

LyricsService turns a SongIdentity into lyrics plus a version token.
Lookup order, stopping at the first hit unless force_reload is set:

    1. Memory cache (cache key)
    2. Persistent lyrics cache, TTL-checked (skipped when strategy is 'none')
    3. Local lyrics uploaded by the user
    4. An in-flight fetch for the same key (joined, never duplicated)
    5. Provider fallback chain, then the video caption fallback

A successful fetch is stamped with version = fetch time in milliseconds
and written through to memory and (unless strategy is 'none') the
persistent cache.

Error policy:
    - A failing provider is logged and the chain advances.
    - Only exhaustion of the whole chain reaches the caller (NotFoundError).
    - StoreError from the persistent cache always propagates.
"""

from lyrics_engine.core.context import EngineContext
from lyrics_engine.core.exceptions import NotFoundError, ProviderError
from lyrics_engine.core.logger import get_logger, log_lyrics_failure
from lyrics_engine.core.models import LyricsCacheEntry, LyricsDocument, SongIdentity
from lyrics_engine.providers.base import (
    AI_ONLY_PROVIDERS,
    FetchOptions,
    LyricsProviderClient,
    Provider,
    SubtitleExtractor,
)
from lyrics_engine.providers.local import find_local_record
from lyrics_engine.utils.text import is_empty_lyrics


logger = get_logger(__name__)


class LyricsService:
    """
    Resolves songs to lyrics through caches and a provider chain.

    Attributes:
        context: Shared engine state.
        providers: Lyrics providers by name. Unknown or AI-only names in the
                   configuration are ignored.
        subtitles: Optional caption extractor used as last resort.
    """

    def __init__(
        self,
        context: EngineContext,
        providers: dict[str, LyricsProviderClient],
        subtitles: SubtitleExtractor | None = None,
    ) -> None:
        self.context = context
        self.providers = dict(providers)
        self.subtitles = subtitles

    @property
    def strategy(self) -> str:
        return self.context.config.cache.strategy

    def provider_chain(self) -> list[str]:
        """
        Provider names in the order they are tried.

        The preferred provider comes first (falling back to lrclib when the
        preference is not a registered lyrics provider), followed by every
        other registered provider. Excluded and AI-only providers are dropped.
        """
        lyrics_config = self.context.config.lyrics
        candidates = [name for name in self.providers if name not in AI_ONLY_PROVIDERS]

        preferred = lyrics_config.provider
        if preferred not in candidates:
            preferred = Provider.LRCLIB.value

        ordered = [preferred] + [name for name in candidates if name != preferred]
        excluded = set(lyrics_config.excluded_providers)
        return [name for name in ordered if name in candidates and name not in excluded]

    async def get_or_fetch(self, song: SongIdentity, force_reload: bool = False) -> LyricsCacheEntry:
        """
        Resolve lyrics for a song.

        Args:
            song: Song identity (title and artist required).
            force_reload: Skip memory, persistent and local lookups.

        Returns:
            LyricsCacheEntry with the document and its version.

        Raises:
            InvalidRequestError: If the song has no title or artist.
            NotFoundError: If no provider produced lyrics.
            StoreError: If the persistent cache fails.
        """
        song.validate()
        key = song.cache_key

        if not force_reload:
            cached = await self._get_cached(key)
            if cached is not None:
                return cached

            local = await self._get_local(song)
            if local is not None:
                return local

        return await self.context.registry.run(key, lambda: self._fetch_new(song, force_reload))

    # =========================================================================
    # Cache Lookups
    # =========================================================================

    async def _get_cached(self, key: str) -> LyricsCacheEntry | None:
        memory_hit = self.context.lyrics_memory.get(key)
        if memory_hit is not None:
            logger.debug(f"Lyrics memory hit: {key}")
            return memory_hit

        if self.strategy == "none":
            return None

        record = await self.context.store.lyrics_cache.get(key)
        if record is None:
            return None

        age = self.context.now() - record.get("timestamp", 0)
        ttl = self.context.config.cache.ttl_ms(self.strategy)
        if age < ttl:
            entry = LyricsCacheEntry(
                lyrics=LyricsDocument.from_dict(record["lyrics"]),
                version=record["version"],
            )
            self.context.lyrics_memory[key] = entry
            logger.debug(f"Lyrics cache hit ({age} ms old): {key}")
            return entry

        logger.debug(f"Lyrics cache expired ({age} ms >= {ttl} ms): {key}")
        await self.context.store.lyrics_cache.delete(key)
        return None

    async def _get_local(self, song: SongIdentity) -> LyricsCacheEntry | None:
        record = await find_local_record(self.context.store.local_lyrics, song)
        if record is None or not record.get("lyrics"):
            return None

        logger.debug(f"Using local lyrics {record.get('song_id')} for {song.cache_key}")
        version = record.get("updated_at") or record.get("timestamp") or record.get("song_id")
        return LyricsCacheEntry(lyrics=LyricsDocument.from_dict(record["lyrics"]), version=version)

    # =========================================================================
    # Provider Chain
    # =========================================================================

    async def _fetch_new(self, song: SongIdentity, force_reload: bool) -> LyricsCacheEntry:
        key = song.cache_key
        fetch_options = FetchOptions(bypass_cache=self.strategy == "none")
        source_order = self.context.config.lyrics.source_order
        chain = self.provider_chain()

        lyrics: LyricsDocument | None = None
        for name in chain:
            try:
                lyrics = await self.providers[name].fetch(song, source_order, force_reload, fetch_options)
            except ProviderError as e:
                logger.warning(f"Provider {name} failed for {key}: {e.message}")
                lyrics = None

            if not is_empty_lyrics(lyrics):
                logger.info(f"Lyrics found via {name}: {key}")
                break

        if is_empty_lyrics(lyrics) and song.video_id and song.subtitle and self.subtitles is not None:
            try:
                lyrics = await self.subtitles.fetch_subtitles(song)
            except ProviderError as e:
                logger.warning(f"Caption fallback failed for {key}: {e.message}")
                lyrics = None
            if not is_empty_lyrics(lyrics):
                logger.info(f"Lyrics built from video captions: {key}")

        if is_empty_lyrics(lyrics):
            log_lyrics_failure(logger, key, "No lyrics found from any provider", chain)
            raise NotFoundError("No lyrics found from any provider", details={"key": key, "tried": chain})

        fetched_at = self.context.now()
        lyrics.metadata["fetched_at"] = fetched_at
        entry = LyricsCacheEntry(lyrics=lyrics, version=fetched_at)

        self.context.lyrics_memory[key] = entry
        if self.strategy != "none":
            await self.context.store.lyrics_cache.set({
                "key": key,
                "lyrics": lyrics.to_dict(),
                "version": fetched_at,
                "timestamp": fetched_at,
                "duration": song.duration,
            })

        return entry
