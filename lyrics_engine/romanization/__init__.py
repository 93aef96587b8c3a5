"""
Structured romanization through an AI transformer.

Components:
    - engine: RomanizationEngine, line preparation and reconstruction
    - validator: ResponseValidator and ValidationResult
    - schema: JSON response schemas
    - prompts: Conversation prompt builders
"""

from lyrics_engine.romanization.engine import (
    ErrorRepeatTracker,
    RomanizationEngine,
    merge_selective_fixes,
    prepare_lines,
    reconstruct_lines,
)
from lyrics_engine.romanization.validator import ResponseValidator, ValidationResult

__all__ = [
    "RomanizationEngine",
    "ErrorRepeatTracker",
    "prepare_lines",
    "merge_selective_fixes",
    "reconstruct_lines",
    "ResponseValidator",
    "ValidationResult",
]
