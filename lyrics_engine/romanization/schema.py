"""
Response schemas for the structured transformer.

Schemas use the OpenAPI subset accepted by Gemini's responseSchema
(upper-case type names). The chunked variants are only used when at
least one structured line carries chunks; a chunk array is optional per
line so lines without chunks can omit it.
"""

from typing import Any


def _line_schema(with_chunks: bool) -> dict[str, Any]:
    properties: dict[str, Any] = {
        "text": {
            "type": "STRING",
            "description": "The romanized text of the entire line.",
        },
        "original_line_index": {
            "type": "INTEGER",
            "description": "The original index of the line, copied from the input.",
        },
    }
    if with_chunks:
        properties["chunk"] = {
            "type": "ARRAY",
            "nullable": True,
            "description": "Romanized chunks, one per input chunk, in the same order.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "text": {"type": "STRING"},
                    "chunkIndex": {"type": "INTEGER"},
                },
                "required": ["text", "chunkIndex"],
            },
        }
    return {
        "type": "OBJECT",
        "properties": properties,
        "required": ["text", "original_line_index"],
    }


def build_romanization_schema(with_chunks: bool) -> dict[str, Any]:
    """Schema of a full response: {romanized_lyrics: [line, ...]}."""
    return {
        "type": "OBJECT",
        "properties": {
            "romanized_lyrics": {
                "type": "ARRAY",
                "items": _line_schema(with_chunks),
            }
        },
        "required": ["romanized_lyrics"],
    }


def build_selective_schema(with_chunks: bool) -> dict[str, Any]:
    """Schema of a selective fix: {fixed_lines: [line, ...]}."""
    return {
        "type": "OBJECT",
        "properties": {
            "fixed_lines": {
                "type": "ARRAY",
                "items": _line_schema(with_chunks),
            }
        },
        "required": ["fixed_lines"],
    }


def build_translation_schema() -> dict[str, Any]:
    """Schema of a batch translation: {translated_lyrics, target_language}."""
    return {
        "type": "OBJECT",
        "properties": {
            "translated_lyrics": {
                "type": "ARRAY",
                "description": "Translated lyric lines, same order and count as the input.",
                "items": {"type": "STRING"},
            },
            "target_language": {
                "type": "STRING",
                "description": "The target language for the translation.",
            },
        },
        "required": ["translated_lyrics", "target_language"],
    }
