"""Test provider parsing and client behaviour"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from conftest import FakeHttpSession, make_document, make_word_line
from lyrics_engine.core.exceptions import ProviderError
from lyrics_engine.core.models import LyricsDocument, SongIdentity
from lyrics_engine.providers.base import FetchOptions
from lyrics_engine.providers.gemini import GeminiClient
from lyrics_engine.providers.google import MAX_CONCURRENT_REQUESTS, GoogleTranslateClient
from lyrics_engine.providers.local import LocalLyricsProvider, find_local_record
from lyrics_engine.providers.lrclib import LRCLibProvider, parse_lrc
from lyrics_engine.providers.youtube import YouTubeSubtitleClient, _with_json3, parse_json3, select_caption_track


class TestParseLrc:
    """Test LRC parsing"""

    def test_basic(self):
        lines = parse_lrc("[00:01.50]first\n[00:03.00]second\n")

        assert [(line.text, line.start, line.end) for line in lines] == [
            ("first", 1500, 3000),
            ("second", 3000, 3000),
        ]

    def test_millisecond_fraction_and_no_fraction(self):
        lines = parse_lrc("[01:02.345]a\n[01:05]b")

        assert [line.start for line in lines] == [62345, 65000]

    def test_multiple_stamps_and_sorting(self):
        """A repeated line is emitted once per stamp, in time order"""
        lines = parse_lrc("[00:10.00][00:30.00]chorus\n[00:20.00]verse")

        assert [(line.text, line.start) for line in lines] == [
            ("chorus", 10000),
            ("verse", 20000),
            ("chorus", 30000),
        ]

    def test_metadata_tags_ignored(self):
        lines = parse_lrc("[ar:Someone]\n[ti:Song]\n[00:01.00]la")

        assert [line.text for line in lines] == ["la"]


class TestLRCLibDocument:
    """Test conversion of LRCLib payloads"""

    def provider(self):
        return LRCLibProvider(session=None)

    def test_synced(self):
        document = self.provider()._to_document({"id": 7, "syncedLyrics": "[00:01.00]la"})

        assert document.lines[0].text == "la"
        assert document.metadata == {"source": "lrclib", "lrclib_id": 7}

    def test_plain_fallback(self):
        document = self.provider()._to_document({"syncedLyrics": None, "plainLyrics": "a\n\nb\n"})

        assert [line.text for line in document.lines] == ["a", "b"]
        assert document.metadata["synced"] is False

    def test_instrumental(self):
        assert self.provider()._to_document({"instrumental": True, "plainLyrics": "x"}) is None

    def test_nothing(self):
        assert self.provider()._to_document({"id": 1}) is None


class TestCaptions:
    """Test caption track selection and parsing"""

    def test_generated_tracks_skipped(self):
        tracks = [
            {"languageCode": "en", "kind": "asr", "isDefault": True},
            {"languageCode": "en", "vssId": "a.en"},
        ]

        assert select_caption_track(tracks, "en") is None

    def test_default_track_first(self):
        tracks = [{"languageCode": "en"}, {"languageCode": "ja", "isDefault": True}]

        assert select_caption_track(tracks, "en")["languageCode"] == "ja"

    def test_preferred_language(self):
        tracks = [{"languageCode": "ja"}, {"languageCode": "en-GB"}]

        assert select_caption_track(tracks, "en")["languageCode"] == "en-GB"
        assert select_caption_track(tracks, "ko")["languageCode"] == "ja"

    def test_with_json3(self):
        url = _with_json3("https://www.youtube.com/api/timedtext?v=abc&fmt=srv3&lang=en")

        assert url == "https://www.youtube.com/api/timedtext?v=abc&lang=en&fmt=json3"

    def test_parse_json3(self):
        lines = parse_json3({"events": [
            {"tStartMs": 1000, "dDurationMs": 2000, "segs": [{"utf8": "hello "}, {"utf8": "world"}]},
            {"tStartMs": 3000, "segs": [{"utf8": "\n"}]},
            {"tStartMs": 4000},
        ]})

        assert [(line.text, line.start, line.end) for line in lines] == [("hello world", 1000, 3000)]


class TestLocalLyrics:
    """Test local lyrics lookup"""

    @pytest.mark.asyncio
    async def test_match_by_song_id_then_title(self, store):
        await store.local_lyrics.set({
            "song_id": "one",
            "song_info": {"title": "Lemon", "artist": "Kenshi Yonezu"},
            "lyrics": make_document("a").to_dict(),
        })

        by_id = await find_local_record(store.local_lyrics, SongIdentity(title="x", artist="y", song_id="one"))
        by_title = await find_local_record(store.local_lyrics, SongIdentity(title=" lemon", artist="KENSHI YONEZU"))
        missing = await find_local_record(store.local_lyrics, SongIdentity(title="Lemon", artist="Other"))

        assert by_id["song_id"] == "one"
        assert by_title["song_id"] == "one"
        assert missing is None

    @pytest.mark.asyncio
    async def test_provider_fetch(self, store):
        document = make_document("a")
        document.metadata = {}
        await store.local_lyrics.set({
            "song_id": "one",
            "song_info": {"title": "Lemon", "artist": "Kenshi Yonezu"},
            "lyrics": document.to_dict(),
        })
        provider = LocalLyricsProvider(store.local_lyrics)

        result = await provider.fetch(SongIdentity(title="Lemon", artist="Kenshi Yonezu"), (), False, FetchOptions())

        assert result.lines[0].text == "a"
        assert result.metadata["source"] == "local"


class TestGoogleTranslateClient:
    """Test response handling of the gtx client"""

    @pytest.mark.asyncio
    async def test_translate_joins_segments(self):
        client = GoogleTranslateClient(session=None)
        payload = [[["Hello ", "안녕 "], ["world", "세상"]], None, "ko"]

        with patch.object(client, "_request", AsyncMock(return_value=payload)) as request:
            assert await client.translate("안녕 세상", "en") == "Hello world"
            request.assert_awaited_once_with("안녕 세상", "en", ["t"])

    @pytest.mark.asyncio
    async def test_translate_blank_makes_no_request(self):
        client = GoogleTranslateClient(session=None)

        with patch.object(client, "_request", AsyncMock()) as request:
            assert await client.translate("  ", "en") == "  "
            request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_translate_unexpected_payload(self):
        client = GoogleTranslateClient(session=None)

        with patch.object(client, "_request", AsyncMock(return_value=None)):
            with pytest.raises(ProviderError):
                await client.translate("안녕", "en")

    @pytest.mark.asyncio
    async def test_detect(self):
        client = GoogleTranslateClient(session=None)

        with patch.object(client, "_request", AsyncMock(return_value=[[], None, "JA"])):
            assert await client.detect("夢") == "ja"
        with patch.object(client, "_request", AsyncMock(return_value={})):
            assert await client.detect("夢") is None

    @pytest.mark.asyncio
    async def test_romanize_lines_and_syllables(self):
        """Latin text is never sent; non-Latin text uses the transliteration segment"""
        client = GoogleTranslateClient(session=None)
        table = {"사랑": "sarang", "사": "sa", "랑": "rang"}

        async def fake_request(text, target_lang, modes):
            return [[["love", text], [None, None, None, table[text]]]]

        document = LyricsDocument(lines=[make_word_line("사", "랑"), make_word_line("baby")], type="Word")
        with patch.object(client, "_request", side_effect=fake_request) as request:
            lines = await client.romanize(document)

        assert lines[0].romanized_text == "sarang"
        assert [s.romanized_text for s in lines[0].syllables] == ["sa", "rang"]
        assert lines[1].romanized_text == "baby"
        assert request.await_count == 3

    @pytest.mark.asyncio
    async def test_romanize_bounds_concurrent_requests(self):
        """A word-synced song never has more than five requests in flight"""
        client = GoogleTranslateClient(session=None)
        active = 0
        max_active = 0

        async def fake_request(text, target_lang, modes):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0)
            active -= 1
            return [[[text, text], [None, None, None, f"r-{text}"]]]

        lines = [make_word_line(*[chr(0xAC00 + i * 10 + j) for j in range(4)]) for i in range(10)]
        document = LyricsDocument(lines=lines, type="Word")
        with patch.object(client, "_request", side_effect=fake_request) as request:
            romanized = await client.romanize(document)

        assert request.await_count == 50
        assert max_active == MAX_CONCURRENT_REQUESTS
        assert romanized[3].romanized_text == f"r-{lines[3].text}"
        assert [s.romanized_text for s in romanized[3].syllables] == [f"r-{s.text}" for s in lines[3].syllables]


class TestNonJsonBodies:
    """A 200 reply that is not JSON surfaces as ProviderError from every client"""

    HTML = "<html>captcha</html>"

    @pytest.mark.asyncio
    async def test_lrclib(self, song):
        provider = LRCLibProvider(FakeHttpSession(body=self.HTML))

        with pytest.raises(ProviderError, match="non-JSON") as exc_info:
            await provider.fetch(song, [], False, FetchOptions())

        assert exc_info.value.provider == "lrclib"

    @pytest.mark.asyncio
    async def test_google(self):
        client = GoogleTranslateClient(FakeHttpSession(body=self.HTML))

        with pytest.raises(ProviderError, match="non-JSON"):
            await client.translate("こんにちは", "en")

    @pytest.mark.asyncio
    async def test_youtube_captions(self):
        song = SongIdentity(
            title="A",
            artist="B",
            video_id="vid",
            subtitle={"captionTracks": [{"baseUrl": "https://www.youtube.com/api/timedtext?v=vid", "languageCode": "en"}]},
        )
        client = YouTubeSubtitleClient(FakeHttpSession(body=self.HTML))

        with pytest.raises(ProviderError, match="json3"):
            await client.fetch_subtitles(song)

    @pytest.mark.asyncio
    async def test_gemini(self):
        client = GeminiClient(FakeHttpSession(body=self.HTML), api_key="key", model="gemini-test")

        with pytest.raises(ProviderError, match="non-JSON"):
            await client.call([{"role": "user", "text": "hi"}], {"type": "OBJECT"})

    @pytest.mark.asyncio
    async def test_gemini_payload_not_an_object(self):
        """A JSON reply that is not an object is rejected, not dereferenced"""
        client = GeminiClient(FakeHttpSession(body="[1, 2]"), api_key="key", model="gemini-test")

        with pytest.raises(ProviderError, match="unexpected payload"):
            await client.call([{"role": "user", "text": "hi"}], {"type": "OBJECT"})


class TestGeminiClient:
    """Test GeminiClient batch translation"""

    @staticmethod
    def reply(payload: dict) -> str:
        return json.dumps({"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]})

    @pytest.mark.asyncio
    async def test_translate_lines(self):
        session = FakeHttpSession(body=self.reply({"translated_lyrics": ["uno", "due"], "target_language": "it"}))
        client = GeminiClient(session, api_key="key", model="gemini-test")

        assert await client.translate_lines(["one", "two"], "it") == ["uno", "due"]
        assert session.urls == ["https://generativelanguage.googleapis.com/v1beta/models/gemini-test:generateContent"]
        assert session.posted[0]["generation_config"]["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_custom_translation_prompt(self):
        """Custom instructions replace the built-in rules; the lyrics are still sent"""
        session = FakeHttpSession(body=self.reply({"translated_lyrics": ["uno"], "target_language": "it"}))
        client = GeminiClient(session, api_key="key", model="gemini-test", translation_prompt="Translate like a poet.")

        await client.translate_lines(["one"], "it")

        prompt = session.posted[0]["contents"][0]["parts"][0]["text"]
        assert prompt.startswith("Translate like a poet.")
        assert '"one"' in prompt
        assert "RULES:" not in prompt

    @pytest.mark.asyncio
    async def test_length_mismatch(self):
        session = FakeHttpSession(body=self.reply({"translated_lyrics": ["uno"], "target_language": "it"}))
        client = GeminiClient(session, api_key="key", model="gemini-test")

        with pytest.raises(ProviderError, match="Length mismatch"):
            await client.translate_lines(["one", "two"], "it")
