"""Test lyrics resolution: caches, local lyrics, provider chain"""

import asyncio

import pytest

from conftest import FakeHttpSession, FakeLyricsProvider, FakeSubtitles, make_document
from lyrics_engine.core.exceptions import InvalidRequestError, NotFoundError, ProviderError
from lyrics_engine.core.models import SongIdentity
from lyrics_engine.lyrics.service import LyricsService
from lyrics_engine.providers.lrclib import LRCLibProvider


AGGRESSIVE_TTL_MS = 7 * 24 * 60 * 60 * 1000


def make_service(context, *providers, subtitles=None):
    return LyricsService(context, {p.name: p for p in providers}, subtitles=subtitles)


class TestProviderChain:
    """Test provider ordering and fallback"""

    def test_preferred_provider_first(self, make_context):
        """The configured provider leads the chain"""
        context = make_context(lyrics={"provider": "local"})
        service = make_service(context, FakeLyricsProvider("lrclib"), FakeLyricsProvider("local"))

        assert service.provider_chain() == ["local", "lrclib"]

    def test_unknown_preference_falls_back_to_lrclib(self, make_context):
        """An unregistered preference is replaced by lrclib"""
        context = make_context(lyrics={"provider": "musixmatch"})
        service = make_service(context, FakeLyricsProvider("local"), FakeLyricsProvider("lrclib"))

        assert service.provider_chain() == ["lrclib", "local"]

    def test_ai_and_excluded_providers_dropped(self, make_context):
        """AI-only and excluded providers never fetch lyrics"""
        context = make_context(lyrics={"excluded_providers": ["local"]})
        service = make_service(
            context,
            FakeLyricsProvider("lrclib"),
            FakeLyricsProvider("local"),
            FakeLyricsProvider("gemini"),
        )

        assert service.provider_chain() == ["lrclib"]

    @pytest.mark.asyncio
    async def test_failing_provider_advances_chain(self, context, song):
        """A ProviderError moves on to the next provider"""
        failing = FakeLyricsProvider("lrclib", error=ProviderError("503", provider="lrclib"))
        working = FakeLyricsProvider("local", document=make_document("line one"))
        service = make_service(context, failing, working)

        entry = await service.get_or_fetch(song)

        assert failing.calls == 1
        assert working.calls == 1
        assert entry.lyrics.lines[0].text == "line one"

    @pytest.mark.asyncio
    async def test_non_json_reply_advances_chain(self, context, song):
        """An LRCLib reply that is not JSON counts as a provider failure"""
        lrclib = LRCLibProvider(FakeHttpSession(body="<html>captcha</html>"))
        working = FakeLyricsProvider("local", document=make_document("line one"))
        service = make_service(context, lrclib, working)

        entry = await service.get_or_fetch(song)

        assert working.calls == 1
        assert entry.lyrics.lines[0].text == "line one"

    @pytest.mark.asyncio
    async def test_empty_result_advances_chain(self, context, song):
        """A document with only blank lines counts as no result"""
        blank = FakeLyricsProvider("lrclib", document=make_document("", "  "))
        working = FakeLyricsProvider("local", document=make_document("text"))
        service = make_service(context, blank, working)

        entry = await service.get_or_fetch(song)

        assert entry.lyrics.lines[0].text == "text"

    @pytest.mark.asyncio
    async def test_chain_exhausted_raises_not_found(self, context, song):
        """No provider result raises NotFoundError"""
        service = make_service(context, FakeLyricsProvider("lrclib"), FakeLyricsProvider("local"))

        with pytest.raises(NotFoundError, match="No lyrics found from any provider"):
            await service.get_or_fetch(song)

        assert not context.registry.has_ongoing(song.cache_key)

    @pytest.mark.asyncio
    async def test_subtitle_fallback(self, context):
        """Captions are used when the chain fails and a video subtitle is known"""
        song = SongIdentity(title="A", artist="B", video_id="vid", subtitle={"captionTracks": []})
        subtitles = FakeSubtitles(make_document("caption line"))
        service = make_service(context, FakeLyricsProvider("lrclib"), subtitles=subtitles)

        entry = await service.get_or_fetch(song)

        assert subtitles.calls == 1
        assert entry.lyrics.lines[0].text == "caption line"

    @pytest.mark.asyncio
    async def test_no_subtitle_fallback_without_video(self, context, song):
        """Captions are not tried for songs without a video id"""
        subtitles = FakeSubtitles(make_document("caption line"))
        service = make_service(context, FakeLyricsProvider("lrclib"), subtitles=subtitles)

        with pytest.raises(NotFoundError):
            await service.get_or_fetch(song)
        assert subtitles.calls == 0

    @pytest.mark.asyncio
    async def test_fetch_options_follow_strategy(self, make_context, song):
        """Strategy 'none' asks providers to bypass their caches"""
        context = make_context(cache={"strategy": "none"}, lyrics={"source_order": ["apple", "musixmatch"]})
        provider = FakeLyricsProvider("lrclib", document=make_document("x"))
        service = make_service(context, provider)

        await service.get_or_fetch(song)

        assert provider.last_fetch["fetch_options"].bypass_cache is True
        assert provider.last_fetch["source_order"] == ("apple", "musixmatch")


class TestCaching:
    """Test memory and persistent caching"""

    @pytest.mark.asyncio
    async def test_invalid_song_rejected(self, context):
        """Songs without title or artist are rejected before any lookup"""
        service = make_service(context, FakeLyricsProvider("lrclib", document=make_document("x")))

        with pytest.raises(InvalidRequestError):
            await service.get_or_fetch(SongIdentity(title="", artist="B"))

    @pytest.mark.asyncio
    async def test_fetch_writes_through(self, context, song, clock):
        """A fetched document is stamped and stored in memory and on disk"""
        service = make_service(context, FakeLyricsProvider("lrclib", document=make_document("x")))

        entry = await service.get_or_fetch(song)

        assert entry.version == clock.now
        assert entry.lyrics.metadata["fetched_at"] == clock.now
        assert context.lyrics_memory[song.cache_key] is entry

        record = await context.store.lyrics_cache.get(song.cache_key)
        assert record["version"] == clock.now
        assert record["timestamp"] == clock.now
        assert record["duration"] == 255

    @pytest.mark.asyncio
    async def test_memory_hit_skips_providers(self, context, song):
        """A second request is served from memory"""
        provider = FakeLyricsProvider("lrclib", document=make_document("x"))
        service = make_service(context, provider)

        first = await service.get_or_fetch(song)
        second = await service.get_or_fetch(song)

        assert provider.calls == 1
        assert second is first

    @pytest.mark.asyncio
    async def test_ttl_boundary(self, context, song, clock):
        """A record aged TTL - 1 ms is served; at exactly TTL it is refetched"""
        provider = FakeLyricsProvider("lrclib", document=make_document("x"))
        service = make_service(context, provider)
        await service.get_or_fetch(song)

        context.clear_memory()
        clock.advance(AGGRESSIVE_TTL_MS - 1)
        await service.get_or_fetch(song)
        assert provider.calls == 1

        context.clear_memory()
        clock.advance(1)
        entry = await service.get_or_fetch(song)
        assert provider.calls == 2
        assert entry.version == clock.now

    @pytest.mark.asyncio
    async def test_expired_record_is_deleted(self, context, song, clock):
        """An expired record is purged even when the refetch fails"""
        provider = FakeLyricsProvider("lrclib", document=make_document("x"))
        service = make_service(context, provider)
        await service.get_or_fetch(song)

        context.clear_memory()
        clock.advance(AGGRESSIVE_TTL_MS)
        provider.document = None

        with pytest.raises(NotFoundError):
            await service.get_or_fetch(song)
        assert await context.store.lyrics_cache.get(song.cache_key) is None

    @pytest.mark.asyncio
    async def test_moderate_ttl(self, make_context, song, clock):
        """The moderate tier expires after two hours"""
        context = make_context(cache={"strategy": "moderate"})
        provider = FakeLyricsProvider("lrclib", document=make_document("x"))
        service = make_service(context, provider)
        await service.get_or_fetch(song)

        context.clear_memory()
        clock.advance(2 * 60 * 60 * 1000)
        await service.get_or_fetch(song)

        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_strategy_none_skips_persistent_cache(self, make_context, song):
        """Strategy 'none' neither reads nor writes the lyrics collection"""
        context = make_context(cache={"strategy": "none"})
        provider = FakeLyricsProvider("lrclib", document=make_document("x"))
        service = make_service(context, provider)

        await service.get_or_fetch(song)

        assert await context.store.lyrics_cache.get(song.cache_key) is None

    @pytest.mark.asyncio
    async def test_force_reload_bypasses_caches(self, context, song):
        """force_reload always reaches the providers"""
        provider = FakeLyricsProvider("lrclib", document=make_document("x"))
        service = make_service(context, provider)

        await service.get_or_fetch(song)
        await service.get_or_fetch(song, force_reload=True)

        assert provider.calls == 2
        assert provider.last_fetch["force_reload"] is True


class TestLocalLyrics:
    """Test the local lyrics override"""

    @pytest.mark.asyncio
    async def test_local_record_by_title_and_artist(self, context, song):
        """Uploaded lyrics matching title and artist win over providers"""
        await context.store.local_lyrics.set({
            "song_id": "Lemon-Kenshi Yonezu-1",
            "song_info": {"title": "lemon", "artist": "KENSHI YONEZU"},
            "lyrics": make_document("local line").to_dict(),
            "timestamp": 1234,
        })
        provider = FakeLyricsProvider("lrclib", document=make_document("remote"))
        service = make_service(context, provider)

        entry = await service.get_or_fetch(song)

        assert provider.calls == 0
        assert entry.lyrics.lines[0].text == "local line"
        assert entry.version == 1234

    @pytest.mark.asyncio
    async def test_local_record_by_song_id(self, context):
        """A song_id selects its record directly"""
        await context.store.local_lyrics.set({
            "song_id": "custom-id",
            "song_info": {"title": "Other", "artist": "Other"},
            "lyrics": make_document("by id").to_dict(),
        })
        service = make_service(context, FakeLyricsProvider("lrclib"))

        entry = await service.get_or_fetch(SongIdentity(title="A", artist="B", song_id="custom-id"))

        assert entry.lyrics.lines[0].text == "by id"
        assert entry.version == "custom-id"

    @pytest.mark.asyncio
    async def test_updated_local_record_changes_version(self, context, song):
        """An update timestamp takes precedence as the version"""
        await context.store.local_lyrics.set({
            "song_id": "id",
            "song_info": song.to_dict(),
            "lyrics": make_document("x").to_dict(),
            "timestamp": 1,
            "updated_at": 2,
        })
        service = make_service(context, FakeLyricsProvider("lrclib"))

        assert (await service.get_or_fetch(song)).version == 2


class TestCoalescing:
    """Test request coalescing"""

    @pytest.mark.asyncio
    async def test_concurrent_requests_fetch_once(self, context, song):
        """Two concurrent requests trigger one provider call and share the result"""
        gate = asyncio.Event()
        provider = FakeLyricsProvider("lrclib", document=make_document("x"), gate=gate)
        service = make_service(context, provider)

        first = asyncio.ensure_future(service.get_or_fetch(song))
        second = asyncio.ensure_future(service.get_or_fetch(song))
        while provider.calls == 0:
            await asyncio.sleep(0)
        # let the second caller get past its cache lookups and join
        await asyncio.sleep(0.1)
        gate.set()

        first_entry, second_entry = await asyncio.gather(first, second)

        assert provider.calls == 1
        assert first_entry is second_entry
        assert not context.registry.has_ongoing(song.cache_key)

    @pytest.mark.asyncio
    async def test_concurrent_failures_shared(self, context, song):
        """Joined callers all receive the NotFoundError"""
        gate = asyncio.Event()
        provider = FakeLyricsProvider("lrclib", gate=gate)
        service = make_service(context, provider)

        first = asyncio.ensure_future(service.get_or_fetch(song))
        second = asyncio.ensure_future(service.get_or_fetch(song))
        while provider.calls == 0:
            await asyncio.sleep(0)
        # let the second caller get past its cache lookups and join
        await asyncio.sleep(0.1)
        gate.set()

        results = await asyncio.gather(first, second, return_exceptions=True)

        assert provider.calls == 1
        assert all(isinstance(r, NotFoundError) for r in results)
