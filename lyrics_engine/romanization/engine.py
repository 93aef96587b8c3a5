"""
Structured romanization engine.

Drives a bounded conversation with a structured-output transformer until
its reply passes ResponseValidator, then expands the reply back onto the
original document.

Workflow:
    1. Prepare: Latin-only lines become passthrough entries and are never
       sent. Other lines are deduplicated by (text, chunk texts), so a
       repeated chorus costs one slot.
    2. Converse, up to max_retries attempts, one at a time:
         - full request (initial prompt, or a full retry restating the contract)
         - validate the reply; success ends the loop
         - few flagged lines (fewer than selective_fix_ratio of all lines) and
           a full-shape reply to patch: ask for the flagged lines only and
           merge the fixes into a structural copy of that reply
         - otherwise: ask for a complete corrected reply
         - same first error same_error_limit times in a row: discard the
           conversation and start over from the initial prompt
         - reply is not JSON: ask for corrected JSON
         - transformer transport failure: the attempt is lost, the
           conversation is kept
    3. Reconstruct: one entry per original line, in original order;
       deduplicated lines all receive their slot's content.

Exhausting the budget raises ValidationError with the final attempt's
violations.
"""

import copy
import json
from typing import Any

from lyrics_engine.core.config import RomanizationConfig
from lyrics_engine.core.exceptions import ProviderError, ValidationError
from lyrics_engine.core.logger import get_logger
from lyrics_engine.core.models import LyricsDocument, PlanEntry, StructuredChunk, StructuredLine
from lyrics_engine.providers.base import StructuredTransformer
from lyrics_engine.romanization.prompts import (
    build_full_retry_prompt,
    build_json_correction_prompt,
    build_romanization_prompt,
    build_selective_fix_prompt,
)
from lyrics_engine.romanization.schema import build_romanization_schema, build_selective_schema
from lyrics_engine.romanization.validator import ResponseValidator
from lyrics_engine.utils.text import is_purely_latin


logger = get_logger(__name__)


class ErrorRepeatTracker:
    """
    Counts consecutive attempts that failed with the same first error.

    Attributes:
        limit: Consecutive repeats that call for a fresh conversation.
        last_error: First error of the previous failed attempt.
        count: Length of the current run of identical errors.
    """

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.last_error: str | None = None
        self.count = 0

    def record(self, error: str) -> bool:
        """
        Record a failed attempt's first error.

        Returns:
            True once the same error has been seen limit times in a row.
        """
        if error == self.last_error:
            self.count += 1
        else:
            self.last_error = error
            self.count = 1
        return self.count >= self.limit

    def reset(self) -> None:
        self.last_error = None
        self.count = 0


def prepare_lines(document: LyricsDocument) -> tuple[list[StructuredLine], list[PlanEntry]]:
    """
    Split a document into transformer input and a reconstruction plan.

    Returns:
        (structured lines, plan). The plan has one entry per document line.
    """
    api_lines: list[StructuredLine] = []
    plan: list[PlanEntry] = []
    slots: dict[tuple, int] = {}

    for index, line in enumerate(document.lines):
        if is_purely_latin(line.text):
            plan.append(PlanEntry(kind="passthrough", original_index=index))
            continue

        chunk = None
        if line.syllables:
            chunk = [StructuredChunk(text=s.text, chunk_index=i) for i, s in enumerate(line.syllables)]
        candidate = StructuredLine(text=line.text, original_line_index=len(api_lines), chunk=chunk)

        slot = slots.get(candidate.content_key)
        if slot is None:
            slot = len(api_lines)
            slots[candidate.content_key] = slot
            api_lines.append(candidate)

        plan.append(PlanEntry(kind="api", original_index=index, api_index=slot))

    return api_lines, plan


def merge_selective_fixes(base: dict[str, Any], fixed_lines: list[Any]) -> dict[str, Any]:
    """
    Apply fixed lines onto a structural copy of a full response.

    A fix whose original_line_index is outside the base is dropped with a
    warning. The base itself is never modified.
    """
    merged = copy.deepcopy(base)
    lines = merged["romanized_lyrics"]

    for fixed in fixed_lines:
        index = fixed.get("original_line_index") if isinstance(fixed, dict) else None
        if isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(lines):
            lines[index] = copy.deepcopy(fixed)
        else:
            logger.warning(f"Could not apply fix for line {index}: index out of bounds")

    return merged


def reconstruct_lines(
    document: LyricsDocument,
    plan: list[PlanEntry],
    response_lines: list[dict[str, Any]],
    with_chunks: bool,
) -> list[dict[str, Any]]:
    """
    Expand validated response lines to one entry per original line.

    Passthrough lines are emitted from the document itself (with chunks
    only when the request used chunks). Api lines are copied from their
    slot and re-tagged with the original index.
    """
    full: list[dict[str, Any]] = []

    for entry in plan:
        if entry.kind == "passthrough":
            line = document.lines[entry.original_index]
            rebuilt: dict[str, Any] = {"text": line.text, "original_line_index": entry.original_index}
            if with_chunks and line.syllables:
                rebuilt["chunk"] = [{"text": s.text, "chunkIndex": i} for i, s in enumerate(line.syllables)]
        else:
            rebuilt = copy.deepcopy(response_lines[entry.api_index])
            rebuilt["original_line_index"] = entry.original_index
        full.append(rebuilt)

    return full


class RomanizationEngine:
    """
    Romanizes documents through a StructuredTransformer.

    Attributes:
        transformer: Structured-output endpoint.
        config: Retry budget and thresholds.
        validator: Response validator built from config.coherence_threshold.
        custom_prompt: Instructions replacing the built-in initial prompt, or None.
    """

    def __init__(
        self,
        transformer: StructuredTransformer,
        config: RomanizationConfig | None = None,
        custom_prompt: str | None = None,
    ) -> None:
        self.transformer = transformer
        self.config = config or RomanizationConfig()
        self.custom_prompt = custom_prompt
        self.validator = ResponseValidator(self.config.coherence_threshold)

    async def romanize(self, document: LyricsDocument) -> LyricsDocument:
        """
        Return a copy of document with romanized_text filled on non-Latin lines.

        Latin-only lines are left untouched. Word-synced lines also get
        per-syllable romanization from the reply's chunks.

        Raises:
            ValidationError: If no valid reply was obtained within max_retries.
        """
        api_lines, plan = prepare_lines(document)
        if not api_lines:
            logger.debug("All lines are Latin script, nothing to romanize")
            return document.copy()

        with_chunks = any(line.has_chunks for line in api_lines)
        logger.info(
            f"Romanizing {len(api_lines)} unique lines "
            f"({len(plan) - len(api_lines)} passthrough or duplicate)"
        )

        response_lines = await self._converse(api_lines, with_chunks)
        return self._apply(document, plan, reconstruct_lines(document, plan, response_lines, with_chunks))

    def _apply(
        self,
        document: LyricsDocument,
        plan: list[PlanEntry],
        reconstructed: list[dict[str, Any]],
    ) -> LyricsDocument:
        result = document.copy()

        for entry, rebuilt in zip(plan, reconstructed):
            if entry.kind != "api":
                continue
            line = result.lines[entry.original_index]
            line.romanized_text = rebuilt["text"]
            chunks = rebuilt.get("chunk") or []
            if line.syllables and len(chunks) == len(line.syllables):
                for syllable, chunk in zip(line.syllables, chunks):
                    syllable.romanized_text = chunk.get("text")

        return result

    async def _converse(self, api_lines: list[StructuredLine], with_chunks: bool) -> list[dict[str, Any]]:
        initial_turn = {
            "role": "user",
            "text": build_romanization_prompt(api_lines, with_chunks, self.custom_prompt),
        }
        full_schema = build_romanization_schema(with_chunks)
        selective_schema = build_selective_schema(with_chunks)

        tracker = ErrorRepeatTracker(self.config.same_error_limit)
        turns: list[dict[str, Any]] = [initial_turn]
        base: dict[str, Any] | None = None
        selective = False
        last_errors: list[str] = []

        for attempt in range(1, self.config.max_retries + 1):
            try:
                schema = selective_schema if selective else full_schema
                raw = await self.transformer.call(list(turns), schema)
            except ProviderError as e:
                logger.warning(f"Romanization attempt {attempt} failed: {e.message}")
                last_errors = [e.message]
                continue

            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError as e:
                error = f"Invalid JSON response: {e.msg}"
                logger.warning(f"Romanization attempt {attempt} failed: {error}")
                last_errors = [error]
                if tracker.record(error):
                    logger.info("Same error repeating, starting fresh conversation")
                    turns, base, selective = [initial_turn], None, False
                    tracker.reset()
                    continue
                turns.append({"role": "model", "text": raw})
                turns.append({"role": "user", "text": build_json_correction_prompt(e.msg)})
                continue

            candidate = parsed
            if selective and base is not None:
                fixed = parsed.get("fixed_lines") if isinstance(parsed, dict) else None
                if isinstance(fixed, list):
                    candidate = merge_selective_fixes(base, fixed)

            result = self.validator.validate(api_lines, candidate)
            if result.is_valid:
                logger.info(f"Romanization succeeded on attempt {attempt}")
                return candidate["romanized_lyrics"]

            last_errors = result.errors
            logger.warning(
                f"Romanization attempt {attempt} failed validation: {'; '.join(result.errors[:5])}"
            )

            full_shape = (
                isinstance(candidate, dict)
                and isinstance(candidate.get("romanized_lyrics"), list)
                and len(candidate["romanized_lyrics"]) == len(api_lines)
            )
            if full_shape:
                base = candidate

            if tracker.record(result.errors[0]):
                logger.info("Same error repeating, starting fresh conversation")
                turns, base, selective = [initial_turn], None, False
                tracker.reset()
                continue

            flagged = result.flagged_lines
            turns.append({"role": "model", "text": raw})
            if base is not None and 0 < len(flagged) < self.config.selective_fix_ratio * len(api_lines):
                logger.debug(f"Requesting selective fix for lines {flagged}")
                turns.append({
                    "role": "user",
                    "text": build_selective_fix_prompt(
                        [api_lines[i] for i in flagged], result.line_errors, with_chunks
                    ),
                })
                selective = True
            else:
                turns.append({
                    "role": "user",
                    "text": build_full_retry_prompt(api_lines, result.errors, with_chunks),
                })
                selective = False

        raise ValidationError(
            f"Romanization failed after {self.config.max_retries} attempts: "
            f"{'; '.join(last_errors[:3])}",
            errors=last_errors,
            details={"lines": len(api_lines)}
        )
