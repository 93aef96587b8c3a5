"""
Translation and romanization of lyrics.

TranslationService resolves (song, action, target language) to a derived
document. Derived documents are cached under

    "{lyrics cache key} - {action} - {target_lang}"

together with the version of the lyrics they came from. A cached record
whose version differs from the current lyrics version is stale: it is
purged and recomputed.

Translate:
    1. Detect the source language from the first five non-empty lines.
    2. Source == target: pass-through, no provider call.
    3. Gemini batch translation when configured; on failure fall back
       to Google.
    4. Google translates line by line with up to five workers pulling from
       one shared cursor. A failed line keeps its original text and its
       index is recorded in failed_lines.

Romanize:
    1. Lyrics that already carry romanization everywhere are returned as-is.
    2. Gemini (the structured romanization engine) when configured.
    3. Otherwise Google. If Google changed nothing at all (or failed) and
       the engine is available, the engine is used as fallback.
"""

from dataclasses import replace

from lyrics_engine.core.context import EngineContext
from lyrics_engine.core.exceptions import (
    ConfigError,
    InvalidRequestError,
    NotFoundError,
    ProviderError,
    StaleVersionError,
)
from lyrics_engine.core.logger import get_logger
from lyrics_engine.core.models import (
    LyricLine,
    LyricsCacheEntry,
    LyricsDocument,
    SongIdentity,
    TranslationMeta,
    TranslationRecord,
)
from lyrics_engine.lyrics.service import LyricsService
from lyrics_engine.providers.base import (
    BatchTranslator,
    LanguageDetector,
    LineRomanizer,
    Provider,
    TranslationProviderClient,
)
from lyrics_engine.romanization.engine import RomanizationEngine
from lyrics_engine.utils.pool import map_bounded
from lyrics_engine.utils.text import is_empty_lyrics, normalize_language_code


logger = get_logger(__name__)

ACTIONS = ("translate", "romanize")

# Line translation workers and detection sample size
MAX_TRANSLATION_WORKERS = 5
DETECTION_SAMPLE_LINES = 5

PASS_THROUGH_PROVIDER = "pass-through"
PREBUILT_PROVIDER = "prebuilt"


def has_prebuilt_romanization(document: LyricsDocument) -> bool:
    """
    True if every non-blank line already carries romanization.

    A line counts as romanized when it has romanized_text, or when it has
    syllables and every syllable has romanized_text.
    """
    lines = [line for line in document.lines if line.text.strip()]
    if not lines:
        return False

    def romanized(line: LyricLine) -> bool:
        if line.romanized_text:
            return True
        return bool(line.syllables) and all(s.romanized_text for s in line.syllables)

    return all(romanized(line) for line in lines)


def is_null_effect(original: list[LyricLine], result: list[LyricLine]) -> bool:
    """
    True if a romanizer's output looks identical to its input on every line.

    A line is unchanged when the result is missing, its romanized_text equals
    the text, or (word-synced) every syllable's romanization equals the
    syllable text.
    """
    def unchanged(index: int, line: LyricLine) -> bool:
        if index >= len(result):
            return True
        out = result[index]

        if out.romanized_text and out.romanized_text.strip() == line.text.strip():
            return True

        if out.syllables and line.syllables:
            return all(
                sub_index >= len(line.syllables)
                or not syllable.romanized_text
                or syllable.romanized_text.strip() == line.syllables[sub_index].text.strip()
                for sub_index, syllable in enumerate(out.syllables)
            )

        return False

    return all(unchanged(index, line) for index, line in enumerate(original))


class TranslationService:
    """
    Derives translated and romanized documents with version-checked caching.

    Attributes:
        context: Shared engine state.
        lyrics: Resolves the base lyrics.
        line_translator: Per-line translator (Google).
        detector: Source language detector, optional.
        batch_translator: Whole-document translator (Gemini), optional.
        line_romanizer: Per-line romanizer (Google), optional.
        engine: Structured romanization engine (Gemini), optional.
    """

    def __init__(
        self,
        context: EngineContext,
        lyrics: LyricsService,
        line_translator: TranslationProviderClient,
        detector: LanguageDetector | None = None,
        batch_translator: BatchTranslator | None = None,
        line_romanizer: LineRomanizer | None = None,
        engine: RomanizationEngine | None = None,
    ) -> None:
        self.context = context
        self.lyrics = lyrics
        self.line_translator = line_translator
        self.detector = detector
        self.batch_translator = batch_translator
        self.line_romanizer = line_romanizer
        self.engine = engine

    @staticmethod
    def cache_key(song: SongIdentity, action: str, target_lang: str) -> str:
        return f"{song.cache_key} - {action} - {target_lang}"

    async def get_or_fetch(
        self,
        song: SongIdentity,
        action: str,
        target_lang: str,
        force_reload: bool = False
    ) -> LyricsDocument:
        """
        Resolve a translated or romanized document.

        Args:
            song: Song identity.
            action: 'translate' or 'romanize'.
            target_lang: Requested target language (ignored by romanize
                         except as part of the cache key).
            force_reload: Refetch base lyrics and skip the translation caches.

        Returns:
            The derived document; its translation_meta describes how it
            was produced.

        Raises:
            InvalidRequestError: Unknown action or invalid song.
            NotFoundError: Base lyrics missing or empty.
            ValidationError: AI romanization never produced a valid reply.
            StoreError: Persistent cache failure.
        """
        if action not in ACTIONS:
            raise InvalidRequestError(
                f"Unknown translation action: {action}",
                details={"action": action}
            )

        base = await self.lyrics.get_or_fetch(song, force_reload)
        if is_empty_lyrics(base.lyrics):
            raise NotFoundError(
                "Original lyrics not found or empty",
                details={"key": song.cache_key}
            )

        key = self.cache_key(song, action, target_lang)

        if not force_reload:
            cached = await self._get_cached(key, base.version)
            if cached is not None:
                return cached

        return await self.context.registry.run(
            key, lambda: self._perform_and_cache(key, base, action, target_lang)
        )

    # =========================================================================
    # Cache
    # =========================================================================

    def _annotate_cache_hit(self, record: TranslationRecord, source: str) -> LyricsDocument:
        document = record.translated_lyrics.copy()
        meta = dict(document.translation_meta or {})
        meta.update(cached=True, cache_source=source, last_served_at=self.context.now())
        document.translation_meta = meta
        return document

    @staticmethod
    def _check_version(record: TranslationRecord, version: int | str) -> None:
        if record.original_version != version:
            raise StaleVersionError(
                "Translation cache is stale",
                details={"cached_version": record.original_version, "current_version": version}
            )

    async def _get_cached(self, key: str, version: int | str) -> LyricsDocument | None:
        record = self.context.translation_memory.get(key)
        if record is not None:
            try:
                self._check_version(record, version)
                logger.debug(f"Translation memory hit: {key}")
                return self._annotate_cache_hit(record, "memory")
            except StaleVersionError as e:
                logger.debug(f"Dropping stale translation from memory: {key} {e.details}")
                del self.context.translation_memory[key]

        raw = await self.context.store.translation_cache.get(key)
        if raw is None:
            return None

        record = TranslationRecord.from_record(raw)
        try:
            self._check_version(record, version)
        except StaleVersionError as e:
            logger.debug(f"Purging stale translation: {key} {e.details}")
            await self.context.store.translation_cache.delete(key)
            return None

        self.context.translation_memory[key] = record
        logger.debug(f"Translation cache hit: {key}")
        return self._annotate_cache_hit(record, "db")

    async def _perform_and_cache(
        self,
        key: str,
        base: LyricsCacheEntry,
        action: str,
        target_lang: str
    ) -> LyricsDocument:
        resolved_target = self.context.config.translation.override_target or target_lang

        if action == "translate":
            lines, meta = await self._translate(base.lyrics, resolved_target)
        else:
            lines, meta = await self._romanize(base.lyrics)

        meta.requested_target_lang = target_lang
        meta.target_lang = normalize_language_code(resolved_target) or resolved_target
        meta.generated_at = self.context.now()

        document = base.lyrics.copy()
        document.lines = lines
        document.translation_meta = meta.to_dict()

        record = TranslationRecord(translated_lyrics=document, original_version=base.version)
        self.context.translation_memory[key] = record
        await self.context.store.translation_cache.set(record.to_record(key))

        logger.info(f"{action.capitalize()} done via {meta.provider}: {key}")
        return document.copy()

    # =========================================================================
    # Translate
    # =========================================================================

    async def _detect_source(self, document: LyricsDocument) -> str | None:
        sample = [line.text for line in document.lines if line.text.strip()][:DETECTION_SAMPLE_LINES]
        if not sample or self.detector is None:
            return None

        try:
            detected = await self.detector.detect("\n".join(sample))
        except ProviderError as e:
            logger.warning(f"Language detection failed, proceeding without it: {e.message}")
            return None

        return normalize_language_code(detected) or None

    async def _translate(
        self,
        document: LyricsDocument,
        target_lang: str
    ) -> tuple[list[LyricLine], TranslationMeta]:
        use_gemini = (
            self.context.config.translation.provider == Provider.GEMINI.value
            and self.batch_translator is not None
        )
        source_lang = await self._detect_source(document)
        target = normalize_language_code(target_lang)

        meta = TranslationMeta(
            action="translate",
            provider=Provider.GEMINI.value if use_gemini else Provider.GOOGLE.value,
            source_lang=source_lang or "auto",
        )

        if source_lang and target and source_lang == target:
            meta.provider = PASS_THROUGH_PROVIDER
            meta.skipped_reason = "source-matches-target"
            return [replace(line, translated_text=line.text) for line in document.copy().lines], meta

        if use_gemini:
            try:
                texts = await self.batch_translator.translate_lines(
                    [line.text for line in document.lines], target_lang
                )
                return self._merge_translations(document, texts), meta
            except ProviderError as e:
                logger.warning(f"Gemini translation failed, falling back to Google: {e.message}")
                meta.fallback_used = True
                meta.provider = Provider.GOOGLE.value

        lines, failed = await self._translate_lines(document, target_lang)
        meta.failed_lines = failed
        return lines, meta

    async def _translate_lines(
        self,
        document: LyricsDocument,
        target_lang: str
    ) -> tuple[list[LyricLine], list[int]]:
        texts = [line.text for line in document.lines]
        failed: set[int] = set()

        async def translate_one(index: int) -> str:
            try:
                return await self.line_translator.translate(texts[index], target_lang)
            except ProviderError as e:
                logger.warning(f"Line {index} translation failed, keeping original: {e.message}")
                failed.add(index)
                return texts[index]

        translated = await map_bounded(translate_one, range(len(texts)), MAX_TRANSLATION_WORKERS)

        return self._merge_translations(document, translated), sorted(failed)

    @staticmethod
    def _merge_translations(document: LyricsDocument, texts: list[str | None]) -> list[LyricLine]:
        return [
            replace(line, translated_text=texts[index] or line.text)
            for index, line in enumerate(document.copy().lines)
        ]

    # =========================================================================
    # Romanize
    # =========================================================================

    async def _romanize_with_engine(self, document: LyricsDocument) -> list[LyricLine]:
        romanized = await self.engine.romanize(document)
        return romanized.lines

    async def _romanize(self, document: LyricsDocument) -> tuple[list[LyricLine], TranslationMeta]:
        use_gemini = (
            self.context.config.translation.romanization_provider == Provider.GEMINI.value
            and self.engine is not None
        )
        meta = TranslationMeta(
            action="romanize",
            provider=Provider.GEMINI.value if use_gemini else Provider.GOOGLE.value,
        )

        if has_prebuilt_romanization(document):
            logger.debug("Using prebuilt romanization")
            meta.provider = PREBUILT_PROVIDER
            meta.skipped_reason = "prebuilt-romanization"
            return document.copy().lines, meta

        if use_gemini or self.line_romanizer is None:
            if self.engine is None:
                raise ConfigError(
                    "No romanization provider is configured",
                    details={"field": "translation.romanization_provider"}
                )
            meta.provider = Provider.GEMINI.value
            return await self._romanize_with_engine(document), meta

        try:
            result = await self.line_romanizer.romanize(document)
        except ProviderError as e:
            if self.engine is None:
                raise
            logger.warning(f"Google romanization failed, attempting Gemini fallback: {e.message}")
            meta.fallback_used = True
            meta.provider = Provider.GEMINI.value
            return await self._romanize_with_engine(document), meta

        if is_null_effect(document.lines, result) and self.engine is not None:
            logger.warning(
                "Google romanization appears to have failed (all results same as input), "
                "attempting Gemini fallback"
            )
            meta.fallback_used = True
            meta.provider = Provider.GEMINI.value
            return await self._romanize_with_engine(document), meta

        return self._merge_romanizations(document, result), meta

    @staticmethod
    def _merge_romanizations(document: LyricsDocument, result: list[LyricLine]) -> list[LyricLine]:
        """Copy romanization fields from result onto the document's lines, by index."""
        lines = document.copy().lines
        for line, out in zip(lines, result):
            line.romanized_text = out.romanized_text
            for syllable, out_syllable in zip(line.syllables, out.syllables):
                syllable.romanized_text = out_syllable.romanized_text
        return lines
