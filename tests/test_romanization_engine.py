"""Test the structured romanization engine"""

import pytest

from conftest import ScriptedTransformer, make_document, make_word_line
from lyrics_engine.core.config import RomanizationConfig
from lyrics_engine.core.exceptions import ProviderError, ValidationError
from lyrics_engine.core.models import LyricsDocument
from lyrics_engine.romanization.engine import (
    ErrorRepeatTracker,
    RomanizationEngine,
    merge_selective_fixes,
    prepare_lines,
)


def reply(*texts: str) -> dict:
    """Valid full reply for plain lines"""
    return {"romanized_lyrics": [{"text": t, "original_line_index": i} for i, t in enumerate(texts)]}


class TestPrepareLines:
    """Test deduplication and passthrough planning"""

    def test_duplicates_share_a_slot(self):
        """Repeated lines are sent once"""
        api_lines, plan = prepare_lines(make_document("사랑", "해", "별", "해"))

        assert [line.text for line in api_lines] == ["사랑", "해", "별"]
        assert [line.original_line_index for line in api_lines] == [0, 1, 2]
        assert [entry.api_index for entry in plan] == [0, 1, 2, 1]
        assert [entry.original_index for entry in plan] == [0, 1, 2, 3]

    def test_latin_lines_pass_through(self):
        """Latin-only and empty lines are never sent"""
        api_lines, plan = prepare_lines(make_document("baby", "사랑", "", "Café!"))

        assert [line.text for line in api_lines] == ["사랑"]
        assert [entry.kind for entry in plan] == ["passthrough", "api", "passthrough", "passthrough"]
        assert plan[0].api_index is None

    def test_chunks_from_syllables(self):
        """Word-synced lines carry one chunk per syllable"""
        document = LyricsDocument(lines=[make_word_line("사", "랑")], type="Word")

        api_lines, _ = prepare_lines(document)

        assert [(c.text, c.chunk_index) for c in api_lines[0].chunk] == [("사", 0), ("랑", 1)]

    def test_same_text_different_chunks_not_merged(self):
        """Dedup considers chunk texts too"""
        document = LyricsDocument(lines=[make_word_line("사", "랑"), make_word_line("사랑")], type="Word")

        api_lines, _ = prepare_lines(document)

        assert len(api_lines) == 2


class TestMergeSelectiveFixes:
    """Test merging of selective fixes"""

    def test_merge_replaces_lines(self):
        base = reply("a", "WRONG", "c")
        merged = merge_selective_fixes(base, [{"text": "b", "original_line_index": 1}])

        assert [line["text"] for line in merged["romanized_lyrics"]] == ["a", "b", "c"]
        assert base["romanized_lyrics"][1]["text"] == "WRONG"

    def test_out_of_bounds_fix_dropped(self):
        base = reply("a")
        merged = merge_selective_fixes(base, [{"text": "z", "original_line_index": 4}, "junk"])

        assert merged == base


class TestErrorRepeatTracker:
    """Test consecutive error counting"""

    def test_limit_reached_on_consecutive_repeats(self):
        tracker = ErrorRepeatTracker(3)

        assert not tracker.record("a")
        assert not tracker.record("a")
        assert tracker.record("a")

    def test_different_error_restarts_count(self):
        tracker = ErrorRepeatTracker(2)

        assert not tracker.record("a")
        assert not tracker.record("b")
        assert tracker.record("b")

        tracker.reset()
        assert not tracker.record("b")


class TestRomanize:
    """Test the conversation loop"""

    @pytest.mark.asyncio
    async def test_all_latin_makes_no_call(self):
        """Nothing to romanize means no transformer call"""
        transformer = ScriptedTransformer([])
        document = make_document("hello", "world")

        result = await RomanizationEngine(transformer).romanize(document)

        assert transformer.calls == []
        assert [line.romanized_text for line in result.lines] == [None, None]

    @pytest.mark.asyncio
    async def test_duplicates_receive_same_romanization(self):
        """Lines sharing a slot get identical output, in original order"""
        transformer = ScriptedTransformer([reply("sarang", "hae", "byeol")])
        document = make_document("사랑", "해", "별", "해")

        result = await RomanizationEngine(transformer).romanize(document)

        assert len(transformer.calls) == 1
        assert [line.romanized_text for line in result.lines] == ["sarang", "hae", "byeol", "hae"]
        assert [line.text for line in result.lines] == ["사랑", "해", "별", "해"]

    @pytest.mark.asyncio
    async def test_custom_prompt_replaces_instructions(self):
        """Custom instructions lead the first turn and the lyrics still follow"""
        transformer = ScriptedTransformer([reply("sarang")])
        engine = RomanizationEngine(transformer, custom_prompt="Use Revised Romanization.")

        await engine.romanize(make_document("사랑"))

        first_turn = transformer.calls[0][0]["text"]
        assert first_turn.startswith("Use Revised Romanization.")
        assert "사랑" in first_turn
        assert "phonetic romanization system" not in first_turn

    @pytest.mark.asyncio
    async def test_passthrough_lines_untouched(self):
        transformer = ScriptedTransformer([reply("sarang")])
        document = make_document("baby", "사랑")

        result = await RomanizationEngine(transformer).romanize(document)

        assert result.lines[0].romanized_text is None
        assert result.lines[1].romanized_text == "sarang"
        assert document.lines[1].romanized_text is None

    @pytest.mark.asyncio
    async def test_syllables_from_chunks(self):
        """Chunk texts are copied onto the syllables"""
        transformer = ScriptedTransformer([{
            "romanized_lyrics": [{
                "text": "sarang",
                "original_line_index": 0,
                "chunk": [{"text": "sa", "chunkIndex": 0}, {"text": "rang", "chunkIndex": 1}],
            }]
        }])
        document = LyricsDocument(lines=[make_word_line("사", "랑")], type="Word")

        result = await RomanizationEngine(transformer).romanize(document)

        assert result.lines[0].romanized_text == "sarang"
        assert [s.romanized_text for s in result.lines[0].syllables] == ["sa", "rang"]
        items = transformer.schemas[0]["properties"]["romanized_lyrics"]["items"]
        assert "chunk" in items["properties"]

    @pytest.mark.asyncio
    async def test_plain_lines_use_chunkless_schema(self):
        transformer = ScriptedTransformer([reply("sarang")])

        await RomanizationEngine(transformer).romanize(make_document("사랑"))

        items = transformer.schemas[0]["properties"]["romanized_lyrics"]["items"]
        assert "chunk" not in items["properties"]

    @pytest.mark.asyncio
    async def test_selective_fix(self):
        """A few flagged lines are repaired without resending everything"""
        bad = reply("hana", "dul", "set", "net", "daseot")
        bad["romanized_lyrics"][2]["original_line_index"] = 7
        transformer = ScriptedTransformer([
            bad,
            {"fixed_lines": [{"text": "set", "original_line_index": 2}]},
        ])
        document = make_document("하나", "둘", "셋", "넷", "다섯")

        result = await RomanizationEngine(transformer).romanize(document)

        assert len(transformer.calls) == 2
        assert [turn["role"] for turn in transformer.calls[1]] == ["user", "model", "user"]
        assert "fixed_lines" in transformer.schemas[1]["properties"]
        assert [line.romanized_text for line in result.lines] == ["hana", "dul", "set", "net", "daseot"]

    @pytest.mark.asyncio
    async def test_full_retry_when_most_lines_flagged(self):
        """Too many flagged lines asks for a complete reply"""
        bad = {"romanized_lyrics": [
            {"text": "hana", "original_line_index": 9},
            {"text": "dul", "original_line_index": 9},
        ]}
        transformer = ScriptedTransformer([bad, reply("hana", "dul")])

        result = await RomanizationEngine(transformer).romanize(make_document("하나", "둘"))

        assert "romanized_lyrics" in transformer.schemas[1]["properties"]
        assert "STRUCTURAL ERRORS" in transformer.calls[1][-1]["text"]
        assert [line.romanized_text for line in result.lines] == ["hana", "dul"]

    @pytest.mark.asyncio
    async def test_invalid_json_asks_for_correction(self):
        transformer = ScriptedTransformer(["not json", reply("sarang")])

        result = await RomanizationEngine(transformer).romanize(make_document("사랑"))

        second = transformer.calls[1]
        assert second[1] == {"role": "model", "text": "not json"}
        assert "not valid JSON" in second[2]["text"]
        assert result.lines[0].romanized_text == "sarang"

    @pytest.mark.asyncio
    async def test_transport_failure_keeps_conversation(self):
        """A failed call consumes an attempt but adds no turns"""
        transformer = ScriptedTransformer([ProviderError("timeout", provider="gemini"), reply("sarang")])

        result = await RomanizationEngine(transformer).romanize(make_document("사랑"))

        assert len(transformer.calls[1]) == 1
        assert result.lines[0].romanized_text == "sarang"

    @pytest.mark.asyncio
    async def test_repeated_error_starts_fresh_conversation(self):
        """The same first error three times in a row resets the conversation"""
        wrong_count = {"romanized_lyrics": []}
        transformer = ScriptedTransformer([wrong_count, wrong_count, wrong_count, reply("sarang")])

        result = await RomanizationEngine(transformer).romanize(make_document("사랑"))

        assert [len(turns) for turns in transformer.calls] == [1, 3, 5, 1]
        assert transformer.calls[3] == transformer.calls[0]
        assert result.lines[0].romanized_text == "sarang"

    @pytest.mark.asyncio
    async def test_exhaustion_raises(self):
        """Running out of attempts raises ValidationError with the last violations"""
        transformer = ScriptedTransformer([reply("a", "b")] * 5)

        with pytest.raises(ValidationError) as exc_info:
            await RomanizationEngine(transformer).romanize(make_document("사랑"))

        assert len(transformer.calls) == 5
        assert exc_info.value.errors == ["Line count mismatch: response has 2, expected 1"]

    @pytest.mark.asyncio
    async def test_retry_budget_from_config(self):
        transformer = ScriptedTransformer(["{"] * 2)
        engine = RomanizationEngine(transformer, RomanizationConfig(max_retries=2))

        with pytest.raises(ValidationError):
            await engine.romanize(make_document("사랑"))

        assert len(transformer.calls) == 2
