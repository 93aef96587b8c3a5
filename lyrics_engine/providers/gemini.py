"""
Gemini generateContent client.

Implements two protocols:
    - StructuredTransformer.call(): one structured-output request for the
      romanization conversation; returns the raw JSON text of the reply.
    - BatchTranslator.translate_lines(): translate a whole document in one
      request with a fixed response schema.

All requests run at temperature 0 with response_mime_type
application/json and an explicit responseSchema.
"""

import asyncio
import json
from typing import Any

import aiohttp

from lyrics_engine.core.exceptions import ProviderError
from lyrics_engine.core.logger import get_logger
from lyrics_engine.providers.base import Provider
from lyrics_engine.romanization.prompts import build_translation_prompt
from lyrics_engine.romanization.schema import build_translation_schema


logger = get_logger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiClient:
    """
    Client for one Gemini API key.

    Attributes:
        model: Model used for batch translation.
        romanization_model: Model used by call() (the romanization conversation).
        translation_prompt: Custom instructions for translate_lines(), or None.
    """

    name = Provider.GEMINI.value

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: str,
        model: str,
        romanization_model: str | None = None,
        translation_prompt: str | None = None,
        base_url: str = GEMINI_API_BASE,
        timeout: float = 120.0
    ) -> None:
        self._session = session
        self._api_key = api_key
        self.model = model
        self.romanization_model = romanization_model or model
        self.translation_prompt = translation_prompt
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _generate(self, model: str, turns: list[dict[str, Any]], schema: dict[str, Any]) -> str:
        """
        POST generateContent and return the first candidate's text.

        Raises:
            ProviderError: On HTTP failure, a blocked prompt or an empty reply.
        """
        body = {
            "contents": [
                {"role": turn.get("role", "user"), "parts": [{"text": turn["text"]}]}
                for turn in turns
            ],
            "generation_config": {
                "temperature": 0.0,
                "response_mime_type": "application/json",
                "responseSchema": schema,
            },
        }
        url = f"{self._base_url}/{model}:generateContent"

        try:
            async with self._session.post(
                url, params={"key": self._api_key}, json=body, timeout=self._timeout
            ) as resp:
                if resp.status != 200:
                    try:
                        error = (await resp.json()).get("error", {}).get("message", resp.reason)
                    except (aiohttp.ContentTypeError, ValueError, AttributeError):
                        error = resp.reason
                    raise ProviderError(
                        f"Gemini API call failed with status {resp.status}: {error}",
                        provider=self.name,
                        details={"status": resp.status, "model": model}
                    )
                data = await resp.json()
        except ValueError as e:
            raise ProviderError(
                f"Gemini API returned a non-JSON body: {e}",
                provider=self.name,
                details={"model": model, "original_error": str(e)}
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(
                f"Gemini API call failed: {e}",
                provider=self.name,
                details={"model": model, "original_error": str(e)}
            ) from e

        if not isinstance(data, dict):
            raise ProviderError(
                "Gemini API returned an unexpected payload",
                provider=self.name,
                details={"model": model, "payload_type": type(data).__name__}
            )

        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise ProviderError(
                f"Gemini blocked the request: {block_reason}",
                provider=self.name,
                details={"block_reason": block_reason}
            )

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                "Gemini returned no candidate text",
                provider=self.name,
                details={"model": model}
            ) from e

    async def call(self, turns: list[dict[str, Any]], schema: dict[str, Any]) -> str:
        """Send a romanization conversation; returns raw JSON text."""
        return await self._generate(self.romanization_model, turns, schema)

    async def translate_lines(self, texts: list[str], target_lang: str) -> list[str]:
        """
        Translate all lines in one request.

        Raises:
            ProviderError: If the reply is not JSON, has no translated_lyrics
                           array, or its length differs from the input.
        """
        prompt = build_translation_prompt(texts, target_lang, self.translation_prompt)
        raw = await self._generate(
            self.model, [{"role": "user", "text": prompt}], build_translation_schema()
        )

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProviderError(
                f"Gemini translation returned invalid JSON: {e}",
                provider=self.name
            ) from e

        translated = parsed.get("translated_lyrics") if isinstance(parsed, dict) else None
        if not isinstance(translated, list):
            raise ProviderError(
                "Gemini translation response has no translated_lyrics array",
                provider=self.name
            )
        if len(translated) != len(texts):
            raise ProviderError(
                f"Length mismatch: expected {len(texts)} lines, got {len(translated)}",
                provider=self.name,
                details={"expected": len(texts), "actual": len(translated)}
            )

        return [str(line) if line is not None else "" for line in translated]
