"""
Structural validation of transformer responses.

A romanization response must mirror its structured input line for line:

    (a) 'romanized_lyrics' is an array with one entry per input line
    (b) each entry's original_line_index equals its position
    (c) each entry has a string 'text'
    (d) an entry has a 'chunk' array exactly when its input line had chunks
    (e) chunk counts match, no chunk is empty, and text is not piled into
        a single chunk when there are several
    (f) the concatenated chunk texts match the entry's text within the
        coherence threshold (Levenshtein distance / longer length)

Validation never stops at the first problem: every violation is
collected so the engine can ask for a selective fix of exactly the
flagged lines.
"""

from dataclasses import dataclass, field
from typing import Any

from rapidfuzz.distance import Levenshtein

from lyrics_engine.core.models import StructuredLine
from lyrics_engine.utils.text import normalize_text


DEFAULT_COHERENCE_THRESHOLD = 0.2


@dataclass
class ValidationResult:
    """
    Outcome of validating one response.

    Attributes:
        errors: Every violation, in line order. Structural errors that
                prevent per-line checks come first and alone.
        line_errors: Violations grouped by line index (per-line checks only).
    """
    errors: list[str] = field(default_factory=list)
    line_errors: dict[int, list[str]] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def flagged_lines(self) -> list[int]:
        return sorted(self.line_errors)

    def add(self, index: int, message: str) -> None:
        self.errors.append(message)
        self.line_errors.setdefault(index, []).append(message)


def text_mismatch_ratio(a: str, b: str) -> float:
    """Normalized edit distance of two texts, in [0, 1]."""
    left, right = normalize_text(a), normalize_text(b)
    if left == right:
        return 0.0
    longest = max(len(left), len(right))
    return Levenshtein.distance(left, right) / longest if longest else 0.0


class ResponseValidator:
    """
    Validates parsed transformer responses against their structured input.

    Attributes:
        coherence_threshold: Largest accepted mismatch ratio for rule (f).
    """

    def __init__(self, coherence_threshold: float = DEFAULT_COHERENCE_THRESHOLD) -> None:
        self.coherence_threshold = coherence_threshold

    def validate(self, lines: list[StructuredLine], response: Any) -> ValidationResult:
        result = ValidationResult()

        romanized = response.get("romanized_lyrics") if isinstance(response, dict) else None
        if not isinstance(romanized, list):
            result.errors.append("The top-level 'romanized_lyrics' key is missing or not an array")
            return result

        if len(romanized) != len(lines):
            result.errors.append(
                f"Line count mismatch: response has {len(romanized)}, expected {len(lines)}"
            )
            return result

        for index, (original, line) in enumerate(zip(lines, romanized)):
            self._validate_line(index, original, line, result)

        return result

    def _validate_line(
        self,
        index: int,
        original: StructuredLine,
        line: Any,
        result: ValidationResult
    ) -> None:
        if not isinstance(line, dict):
            result.add(index, f"Line {index}: entry is not an object")
            return

        declared = line.get("original_line_index")
        if isinstance(declared, bool) or declared != index:
            result.add(
                index,
                f"Line {index}: incorrect original_line_index (expected {index}, got {declared})"
            )

        text = line.get("text")
        if not isinstance(text, str):
            result.add(index, f"Line {index}: missing or invalid text field")

        chunks = line.get("chunk")
        has_chunks = isinstance(chunks, list)

        if not original.has_chunks:
            if has_chunks:
                result.add(index, f"Line {index}: unexpected chunk array (original had none)")
            return

        if not has_chunks:
            result.add(index, f"Line {index}: missing expected chunk array")
            return

        if len(chunks) != len(original.chunk):
            result.add(
                index,
                f"Line {index}: chunk count mismatch (original {len(original.chunk)}, got {len(chunks)})"
            )
            return

        self._validate_chunk_distribution(index, text if isinstance(text, str) else "", chunks, result)

    def _validate_chunk_distribution(
        self,
        index: int,
        text: str,
        chunks: list[Any],
        result: ValidationResult
    ) -> None:
        chunk_texts = [
            c.get("text") if isinstance(c, dict) and isinstance(c.get("text"), str) else ""
            for c in chunks
        ]

        empty = sum(1 for t in chunk_texts if not t.strip())
        if empty:
            result.add(index, f"Line {index}: found {empty} empty chunk(s)")

        if len(chunks) > 1 and len(chunks) - empty == 1:
            result.add(index, f"Line {index}: all text concentrated in one chunk")

        ratio = text_mismatch_ratio("".join(chunk_texts), text)
        if ratio > self.coherence_threshold:
            result.add(index, f"Line {index}: significant text mismatch ({ratio * 100:.1f}% difference)")
