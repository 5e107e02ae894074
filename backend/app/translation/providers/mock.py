from __future__ import annotations

import asyncio
import hashlib

from backend.app.translation.providers.base import (
    TranslationProvider,
    TranslationProviderError,
)

MOCK_REPLIES = [
    "Thank you for contacting us, we are checking this for you.",
    "Please wait a moment while we verify your account.",
    "Your request has been received and is being processed.",
    "Could you please share your member ID so we can help?",
    "We apologize for the inconvenience.",
]


class MockTranslationProvider(TranslationProvider):
    """Offline provider that produces deterministic text for local runs and tests."""

    def __init__(
        self,
        delay_seconds: float = 0.0,
        fail_translations: bool = False,
        fail_suggestions: bool = False,
        suggestions_enabled: bool = True,
    ) -> None:
        self._delay_seconds = max(0.0, delay_seconds)
        self.fail_translations = fail_translations
        self.fail_suggestions = fail_suggestions
        self._suggestions_enabled = suggestions_enabled
        self.translate_calls = 0
        self.suggest_calls = 0

    @property
    def name(self) -> str:
        return "mock-translation-provider"

    @property
    def supports_suggestions(self) -> bool:
        return self._suggestions_enabled

    async def translate(
        self,
        query: str,
        source_language: str | None,
        target_language: str,
    ) -> str:
        self.translate_calls += 1
        if self._delay_seconds:
            await asyncio.sleep(self._delay_seconds)
        if self.fail_translations:
            raise TranslationProviderError("mock_translation_failure")

        source_tag = source_language or "auto"
        return f"[{source_tag}->{target_language}] {query.strip()}"

    async def suggest_replies(self, text: str, language: str | None) -> list[str]:
        self.suggest_calls += 1
        if self._delay_seconds:
            await asyncio.sleep(self._delay_seconds)
        if self.fail_suggestions:
            raise TranslationProviderError("mock_suggestion_failure")

        seed = hashlib.sha256(text.strip().encode("utf-8")).hexdigest()
        return [MOCK_REPLIES[int(seed[:8], 16) % len(MOCK_REPLIES)]]
