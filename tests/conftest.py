"""Test configuration and fixtures"""

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from lyrics_engine.core.config import parse_config
from lyrics_engine.core.context import EngineContext
from lyrics_engine.core.exceptions import ProviderError
from lyrics_engine.core.models import LyricLine, LyricSyllable, LyricsDocument, SongIdentity
from lyrics_engine.core.store import PersistentStore


# =============================================================================
# Fakes
# =============================================================================

class FakeClock:
    """Manually advanced millisecond clock"""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeLyricsProvider:
    """Lyrics provider returning a fixed document (or raising)"""

    def __init__(
        self,
        name: str,
        document: LyricsDocument | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.name = name
        self.document = document
        self.error = error
        self.gate = gate
        self.calls = 0
        self.last_fetch: dict[str, Any] = {}

    async def fetch(self, song, source_order, force_reload, fetch_options):
        self.calls += 1
        self.last_fetch = {
            "song": song,
            "source_order": source_order,
            "force_reload": force_reload,
            "fetch_options": fetch_options,
        }
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.document.copy() if self.document is not None else None


class FakeSubtitles:
    """Caption extractor returning a fixed document"""

    def __init__(self, document: LyricsDocument | None) -> None:
        self.document = document
        self.calls = 0

    async def fetch_subtitles(self, song):
        self.calls += 1
        return self.document


class FakeTranslator:
    """
    Line translator/detector.

    Translates by prefixing the target language; texts in fail_on raise
    ProviderError. With a gate, every call waits for it to be set.
    """

    def __init__(
        self,
        detected: str | None = None,
        fail_on: set[str] | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.detected = detected
        self.fail_on = fail_on or set()
        self.gate = gate
        self.translate_calls: list[str] = []
        self.detect_calls = 0
        self.active = 0
        self.max_active = 0

    async def translate(self, text: str, target_lang: str) -> str:
        self.translate_calls.append(text)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if self.gate is not None:
                await self.gate.wait()
            if text in self.fail_on:
                raise ProviderError(f"cannot translate {text}", provider="google")
            return f"[{target_lang}] {text}"
        finally:
            self.active -= 1

    async def detect(self, sample_text: str) -> str | None:
        self.detect_calls += 1
        return self.detected


class FakeBatchTranslator:
    """Whole-document translator"""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = 0

    async def translate_lines(self, texts: list[str], target_lang: str) -> list[str]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [f"<{target_lang}> {text}" for text in texts]


class FakeLineRomanizer:
    """Per-line romanizer backed by a lookup table; unknown text comes back unchanged"""

    def __init__(self, table: dict[str, str] | None = None, error: Exception | None = None) -> None:
        self.table = table or {}
        self.error = error
        self.calls = 0

    async def romanize(self, document: LyricsDocument) -> list[LyricLine]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        result = []
        for line in document.lines:
            result.append(LyricLine(
                text=line.text,
                start=line.start,
                end=line.end,
                romanized_text=self.table.get(line.text, line.text),
                syllables=[
                    LyricSyllable(text=s.text, romanized_text=self.table.get(s.text, s.text))
                    for s in line.syllables
                ],
            ))
        return result


class FakeEngine:
    """Stands in for RomanizationEngine"""

    def __init__(self, suffix: str = " (ai)") -> None:
        self.suffix = suffix
        self.calls = 0

    async def romanize(self, document: LyricsDocument) -> LyricsDocument:
        self.calls += 1
        result = document.copy()
        for line in result.lines:
            line.romanized_text = line.text + self.suffix
        return result


class FakeResponse:
    """aiohttp response with a fixed status and raw body"""

    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        self.reason = "OK" if status == 200 else "Error"

    async def json(self, content_type: str | None = "application/json") -> Any:
        return json.loads(self.body)

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False


class FakeHttpSession:
    """
    Stands in for aiohttp.ClientSession.

    Every GET or POST answers with the same status and body; requested
    URLs and POSTed JSON bodies are recorded.
    """

    def __init__(self, status: int = 200, body: str = "") -> None:
        self.status = status
        self.body = body
        self.urls: list[str] = []
        self.posted: list[Any] = []

    def get(self, url: str, **kwargs) -> FakeResponse:
        self.urls.append(url)
        return FakeResponse(self.status, self.body)

    def post(self, url: str, **kwargs) -> FakeResponse:
        self.urls.append(url)
        self.posted.append(kwargs.get("json"))
        return FakeResponse(self.status, self.body)


class ScriptedTransformer:
    """
    Structured transformer replaying scripted replies.

    Each reply is a string (returned as-is), a dict/list (JSON-encoded)
    or an exception (raised). Every call's turns are recorded.
    """

    def __init__(self, replies: list[Any]) -> None:
        self.replies = list(replies)
        self.calls: list[list[dict[str, Any]]] = []
        self.schemas: list[dict[str, Any]] = []

    async def call(self, turns, schema) -> str:
        self.calls.append(turns)
        self.schemas.append(schema)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return reply
        return json.dumps(reply, ensure_ascii=False)


# =============================================================================
# Builders
# =============================================================================

def make_document(*texts: str, doc_type: str = "Line") -> LyricsDocument:
    """Line-synced document, one second per line"""
    return LyricsDocument(
        lines=[LyricLine(text=t, start=i * 1000, end=(i + 1) * 1000) for i, t in enumerate(texts)],
        type=doc_type,
        metadata={"source": "test"},
    )


def make_word_line(*syllables: str) -> LyricLine:
    return LyricLine(
        text="".join(syllables),
        syllables=[LyricSyllable(text=s, start=i * 100, end=(i + 1) * 100) for i, s in enumerate(syllables)],
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def song():
    """A song with every identity field set"""
    return SongIdentity(title="Lemon", artist="Kenshi Yonezu", album="Lemon", duration=255)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path):
    store = PersistentStore(tmp_path / "cache.db")
    yield store
    store.close()


@pytest.fixture
def make_context(store, clock, tmp_path: Path):
    """Factory building an EngineContext over the shared store and clock"""
    def factory(**sections: dict[str, Any]) -> EngineContext:
        raw = {
            "storage": {"database": str(tmp_path / "cache.db")},
            "logging": {"directory": str(tmp_path)},
            "gemini": {"api_key": "test-key"},
        }
        raw.update(sections)
        return EngineContext(parse_config(raw), store, clock=clock)

    return factory


@pytest.fixture
def context(make_context):
    return make_context()
