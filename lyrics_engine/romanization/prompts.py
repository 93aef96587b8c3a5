"""
Prompt builders for the structured transformer.

The wording here is not load-bearing: correctness is enforced by the
response schema and ResponseValidator, never by the prompt.
"""

import json

from lyrics_engine.core.models import StructuredLine


def _dump(payload: object) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


def _structure_rule(with_chunks: bool) -> str:
    if with_chunks:
        return (
            "Only add a chunk array to lines that originally had one, with exactly "
            "the same number of chunks. Do not add chunks to line-only lyrics."
        )
    return "These are LINE-SYNCED lyrics only. DO NOT add any chunk arrays to any line."


def build_romanization_prompt(
    lines: list[StructuredLine],
    with_chunks: bool,
    custom_instructions: str | None = None,
) -> str:
    """
    Initial request: romanize every structured line.

    custom_instructions replaces the built-in instructions; the input
    lines are appended either way.
    """
    if custom_instructions:
        return f"""{custom_instructions}

INPUT:
{_dump([line.to_payload() for line in lines])}"""

    return f"""You are a phonetic romanization system.

Transform each line below into the Latin alphabet as it is actually pronounced.
This is NOT translation: do not translate, explain or annotate.

STRUCTURE RULES:
- Return exactly {len(lines)} lines in "romanized_lyrics", in the same order.
- Copy "original_line_index" from each input line unchanged.
- Keep any Latin-script words exactly as they are.
- {_structure_rule(with_chunks)}
- Every chunk must contain the romanization of its own input chunk; never leave a chunk empty.

INPUT:
{_dump([line.to_payload() for line in lines])}"""


def build_selective_fix_prompt(
    problem_lines: list[StructuredLine],
    line_errors: dict[int, list[str]],
    with_chunks: bool,
) -> str:
    """Repair request scoped to the flagged lines only."""
    listing = [
        {
            "original_line_index": line.original_line_index,
            "original_text": line.text,
            "had_chunks": line.has_chunks,
            "chunk": [c.to_payload() for c in line.chunk] if line.chunk else None,
            "errors": line_errors.get(line.original_line_index, []),
        }
        for line in problem_lines
    ]
    return f"""ERROR CORRECTION NEEDED: some lines of your previous response were invalid.

MOST CRITICAL RULE: {_structure_rule(with_chunks)}

LINES THAT NEED FIXING:
{_dump(listing)}

Return ONLY the corrected lines in "fixed_lines", each with its original_line_index."""


def build_full_retry_prompt(lines: list[StructuredLine], errors: list[str], with_chunks: bool) -> str:
    """Repair request restating the complete structural contract."""
    return f"""STRUCTURAL ERRORS DETECTED in your previous response:
{_dump(errors[:20])}

MOST SERIOUS RULE: {_structure_rule(with_chunks)}

Original lyrics structure for reference:
{_dump([line.to_payload() for line in lines])}

Provide a COMPLETE corrected response with exactly {len(lines)} lines."""


def build_json_correction_prompt(error: str) -> str:
    """Follow-up after a reply that was not valid JSON."""
    return (
        "Your previous response was not valid JSON. "
        f"Please provide a corrected JSON response. Error: {error}"
    )


def build_translation_prompt(
    texts: list[str],
    target_lang: str,
    custom_instructions: str | None = None,
) -> str:
    """Batch translation request; custom_instructions replaces the built-in rules."""
    if custom_instructions:
        return f"""{custom_instructions}

Target language code: "{target_lang}". Return exactly {len(texts)} lines in "translated_lyrics".

LYRICS:
{_dump(texts)}"""

    return f"""Translate the following song lyrics into the language with code "{target_lang}".

RULES:
- Return exactly {len(texts)} lines in "translated_lyrics", one per input line, in order.
- Translate meaning naturally; keep empty lines empty.
- Do not merge, split, number or annotate lines.
- Set "target_language" to "{target_lang}".

LYRICS:
{_dump(texts)}"""
