"""OpenRouter-backed translation of article titles and abstracts."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from ..errors import LitlinkError
from ..http_client import ResilientHttpClient

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

SYSTEM_PROMPT = (
    "You translate scientific and medical texts. Translate the text into {language}, "
    "preserving scientific terminology and precision. Return ONLY the translation."
)


@dataclass
class TranslationResult:
    title: str
    abstract: str | None = None


class Translator:
    """Chat-completion translator sending requests through the ``openrouter`` limiter."""

    api_name = "openrouter"

    def __init__(
        self,
        http: ResilientHttpClient,
        api_key: str | None = None,
        model: str | None = None,
        language: str = "Russian",
    ) -> None:
        self.http = http
        self.api_key = api_key if api_key is not None else http.settings.openrouter_api_key
        self.model = model or http.settings.openrouter_model
        self.language = language

    async def translate_text(self, text: str, max_tokens: int = 2000) -> str:
        """Translate one text. Raises ``ValueError`` on a missing key or empty completion."""
        if not self.api_key:
            raise ValueError("OpenRouter API key not configured")

        data = await self.http.fetch_json(
            OPENROUTER_URL,
            method="POST",
            api_name=self.api_name,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "X-Title": "litlink",
            },
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT.format(language=self.language)},
                    {"role": "user", "content": text},
                ],
                "max_tokens": max_tokens,
                "temperature": 0.1,
            },
        )
        choices = data.get("choices") or [{}]
        content = ((choices[0].get("message") or {}).get("content") or "").strip()
        if not content:
            raise ValueError("Empty translation response")
        return content

    async def translate_article(self, title: str, abstract: str | None = None) -> TranslationResult:
        translated_title = await self.translate_text(title, max_tokens=500)
        translated_abstract = await self.translate_text(abstract) if abstract else None
        return TranslationResult(title=translated_title, abstract=translated_abstract)

    async def translate_many(
        self, articles: list[tuple[str, str | None]], concurrency: int = 3
    ) -> tuple[list[TranslationResult | None], int]:
        """Translate (title, abstract) pairs. Returns per-item results and the failure count."""
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def _one(title: str, abstract: str | None) -> TranslationResult | None:
            async with semaphore:
                try:
                    return await self.translate_article(title, abstract)
                except (LitlinkError, httpx.HTTPError, ValueError) as e:
                    logger.warning("Translation failed for %r: %s", title[:60], e)
                    return None

        results = await asyncio.gather(*(_one(t, a) for t, a in articles))
        failed = sum(1 for r in results if r is None)
        return list(results), failed
