from __future__ import annotations

import asyncio
import logging
import unittest
from dataclasses import replace

from backend.app.settings import Settings
from backend.app.translation.cache import (
    CacheStore,
    InMemoryCacheStore,
    StoreUnavailable,
    TranslationCache,
)
from backend.app.translation.orchestrator import RequestOrchestrator
from backend.app.translation.providers.base import (
    TranslationProvider,
    TranslationProviderError,
)
from backend.app.translation.types import CacheEntry

_LOGGER = logging.getLogger("cstranslator.backend.test.orchestrator")


def _settings(**overrides: object) -> Settings:
    settings = Settings(
        service_name="cs-translator-backend",
        service_version="0.1.0-test",
        environment="test",
        log_level="INFO",
        host="127.0.0.1",
        port=8000,
        translation_mode="mock",
        source_language_code="my",
        source_language_name="Burmese",
        target_language_code="zh",
        target_language_name="Chinese",
        suggestions_enabled=True,
        cooldown_window_seconds=30,
        cooldown_tick_seconds=1.0,
        provider_timeout_seconds=2.0,
        cache_backend="memory",
        cache_path=None,
        cache_namespace="translation_cache",
        swap_text_policy="exchange",
        gemini_model="gemini-2.5-flash",
        gemini_api_base_url="https://generativelanguage.googleapis.com/v1beta",
        gemini_api_key=None,
    )
    return replace(settings, **overrides)


class _ScriptedProvider(TranslationProvider):
    def __init__(
        self,
        translation: str = "你好",
        replies: list[str] | None = None,
        translate_error: Exception | None = None,
        suggest_error: Exception | None = None,
        with_suggestions: bool = True,
    ) -> None:
        self.translation = translation
        self.replies = ["您好，请问有什么可以帮您？"] if replies is None else replies
        self.translate_error = translate_error
        self.suggest_error = suggest_error
        self.with_suggestions = with_suggestions
        self.translate_calls: list[tuple[str, str | None, str]] = []
        self.suggest_calls: list[tuple[str, str | None]] = []

    @property
    def name(self) -> str:
        return "scripted-provider"

    @property
    def supports_suggestions(self) -> bool:
        return self.with_suggestions

    async def translate(
        self,
        query: str,
        source_language: str | None,
        target_language: str,
    ) -> str:
        self.translate_calls.append((query, source_language, target_language))
        if self.translate_error is not None:
            raise self.translate_error
        return self.translation

    async def suggest_replies(self, text: str, language: str | None) -> list[str]:
        self.suggest_calls.append((text, language))
        if self.suggest_error is not None:
            raise self.suggest_error
        return list(self.replies)


class _RecordingStore(InMemoryCacheStore):
    def __init__(self) -> None:
        super().__init__()
        self.saved_keys: list[str] = []

    def save(self, entry: CacheEntry) -> None:
        self.saved_keys.append(entry.key)
        super().save(entry)


class _BrokenStore(CacheStore):
    @property
    def name(self) -> str:
        return "broken"

    def load(self, key: str) -> CacheEntry | None:
        raise StoreUnavailable("locked")

    def save(self, entry: CacheEntry) -> None:
        raise StoreUnavailable("locked")

    def delete_all(self) -> None:
        raise StoreUnavailable("locked")

    def count(self) -> int:
        raise StoreUnavailable("locked")


class RequestOrchestratorTest(unittest.IsolatedAsyncioTestCase):
    def _build(
        self,
        provider: TranslationProvider,
        store: CacheStore | None = None,
        **overrides: object,
    ) -> RequestOrchestrator:
        cache = TranslationCache(store or InMemoryCacheStore(), _LOGGER)
        return RequestOrchestrator(
            settings=_settings(**overrides),
            logger=_LOGGER,
            provider_override=provider,
            cache=cache,
        )

    async def test_miss_dispatches_caches_and_arms_cooldown(self) -> None:
        provider = _ScriptedProvider(translation="你好")
        orchestrator = self._build(provider)

        result = await orchestrator.orchestrate("  မင်္ဂလာပါ ")

        self.assertEqual(result.status, "translated")
        self.assertEqual(result.translation, "你好")
        self.assertEqual(result.suggested_replies, ["您好，请问有什么可以帮您？"])
        self.assertIsNone(result.failure)
        self.assertEqual(result.cache_key, "translate:my-zh:မင်္ဂလာပါ")
        self.assertEqual(orchestrator.cache.get("translate:my-zh:မင်္ဂလာပါ"), "你好")
        self.assertFalse(orchestrator.gate.is_open())
        self.assertEqual(result.cooldown_remaining_seconds, 30)
        self.assertEqual(provider.translate_calls, [("မင်္ဂလာပါ", "Burmese", "Chinese")])
        self.assertEqual(provider.suggest_calls, [("မင်္ဂလာပါ", "Burmese")])

    async def test_cached_input_is_served_without_provider_or_cooldown(self) -> None:
        provider = _ScriptedProvider(translation="你好")
        orchestrator = self._build(provider)

        await orchestrator.orchestrate("မင်္ဂလာပါ")
        orchestrator.gate.reset()

        second = await orchestrator.orchestrate("မင်္ဂလာပါ")
        third = await orchestrator.orchestrate("မင်္ဂလာပါ  ")

        self.assertEqual(second.status, "cached")
        self.assertEqual(second.translation, "你好")
        self.assertEqual(second.suggested_replies, [])
        self.assertEqual(third.translation, "你好")
        self.assertEqual(len(provider.translate_calls), 1)
        self.assertTrue(orchestrator.gate.is_open())
        self.assertEqual(orchestrator.snapshot()["cache_hits"], 2)

    async def test_two_uncached_runs_call_provider_and_write_cache_twice(self) -> None:
        provider = _ScriptedProvider(translation="你好")
        store = _RecordingStore()
        orchestrator = self._build(provider, store=store, cooldown_window_seconds=0)

        first = await orchestrator.orchestrate("မင်္ဂလာပါ")
        orchestrator.clear_cache()
        second = await orchestrator.orchestrate("မင်္ဂလာပါ")

        self.assertEqual(first.status, "translated")
        self.assertEqual(second.status, "translated")
        self.assertEqual(len(provider.translate_calls), 2)
        self.assertEqual(store.saved_keys, ["translate:my-zh:မင်္ဂလာပါ"] * 2)

    async def test_cooldown_window_gates_then_reopens(self) -> None:
        provider = _ScriptedProvider()
        orchestrator = self._build(provider, cooldown_window_seconds=30)

        await orchestrator.orchestrate("first query")
        for _ in range(10):
            orchestrator.gate.tick()

        gated = await orchestrator.orchestrate("second query")
        self.assertEqual(gated.status, "gated")
        self.assertIsNone(gated.translation)
        self.assertIsNone(gated.failure)
        self.assertEqual(gated.cooldown_remaining_seconds, 20)

        for _ in range(21):
            orchestrator.gate.tick()

        allowed = await orchestrator.orchestrate("second query")
        self.assertEqual(allowed.status, "translated")
        self.assertEqual(len(provider.translate_calls), 2)

    async def test_gated_rejection_still_applies_to_cached_input(self) -> None:
        provider = _ScriptedProvider()
        orchestrator = self._build(provider)

        await orchestrator.orchestrate("same text")
        repeat = await orchestrator.orchestrate("same text")

        self.assertEqual(repeat.status, "gated")
        self.assertEqual(len(provider.translate_calls), 1)

    async def test_blank_input_is_a_silent_rejection(self) -> None:
        provider = _ScriptedProvider()
        orchestrator = self._build(provider)

        result = await orchestrator.orchestrate("   \n\t ")

        self.assertEqual(result.status, "empty")
        self.assertIsNone(result.translation)
        self.assertIsNone(result.failure)
        self.assertEqual(provider.translate_calls, [])
        self.assertEqual(orchestrator.snapshot()["empty_rejections"], 1)

    async def test_rejections_log_their_error_kind(self) -> None:
        orchestrator = self._build(_ScriptedProvider())
        await orchestrator.orchestrate("first")

        with self.assertLogs("cstranslator.backend.test.orchestrator", level="DEBUG") as captured:
            await orchestrator.orchestrate("  ")
            await orchestrator.orchestrate("second")

        kinds = [
            getattr(record, "error_kind", None)
            for record in captured.records
            if record.getMessage() == "orchestration_rejected"
        ]
        self.assertEqual(kinds, ["empty_input", "gated"])

    async def test_suggestion_failure_keeps_translation(self) -> None:
        provider = _ScriptedProvider(
            translation="你好",
            suggest_error=TranslationProviderError("suggest down"),
        )
        orchestrator = self._build(provider)

        result = await orchestrator.orchestrate("မင်္ဂလာပါ")

        self.assertEqual(result.status, "translated")
        self.assertEqual(result.translation, "你好")
        self.assertEqual(result.suggested_replies, [])
        self.assertTrue(result.succeeded)
        self.assertEqual(orchestrator.snapshot()["suggestion_failures"], 1)

    async def test_translation_failure_is_classified_and_not_cached(self) -> None:
        provider = _ScriptedProvider(translate_error=TranslationProviderError("gemini_status_error:500"))
        orchestrator = self._build(provider)

        result = await orchestrator.orchestrate("မင်္ဂလာပါ")

        self.assertEqual(result.status, "failed")
        self.assertEqual(result.failure, "provider_error")
        self.assertIsNone(result.translation)
        self.assertEqual(result.message, "Failed to get translation. Please try again.")
        self.assertIsNone(orchestrator.cache.get("translate:my-zh:မင်္ဂလာပါ"))
        self.assertTrue(orchestrator.gate.is_open())
        self.assertEqual(orchestrator.snapshot()["last_error"], "gemini_status_error:500")

        provider.translate_error = None
        retried = await orchestrator.orchestrate("မင်္ဂလာပါ")
        self.assertEqual(retried.status, "translated")

    async def test_blank_translation_counts_as_provider_failure(self) -> None:
        provider = _ScriptedProvider(translation="   ")
        orchestrator = self._build(provider)

        result = await orchestrator.orchestrate("hello")

        self.assertEqual(result.failure, "provider_error")
        self.assertEqual(orchestrator.cache.size(), 0)

    async def test_unexpected_translation_exception_is_classified(self) -> None:
        provider = _ScriptedProvider(translate_error=RuntimeError("boom"))
        orchestrator = self._build(provider)

        result = await orchestrator.orchestrate("hello")

        self.assertEqual(result.failure, "provider_error")
        self.assertTrue(orchestrator.gate.is_open())

    async def test_translation_and_suggestion_run_concurrently(self) -> None:
        suggestion_started = asyncio.Event()

        class _Interlocked(_ScriptedProvider):
            async def translate(self, query, source_language, target_language):  # type: ignore[override]
                await suggestion_started.wait()
                return await super().translate(query, source_language, target_language)

            async def suggest_replies(self, text, language):  # type: ignore[override]
                suggestion_started.set()
                return await super().suggest_replies(text, language)

        orchestrator = self._build(_Interlocked(), provider_timeout_seconds=1.0)

        result = await orchestrator.orchestrate("hello")

        self.assertEqual(result.status, "translated")

    async def test_overlapping_orchestration_is_rejected(self) -> None:
        release = asyncio.Event()

        class _Slow(_ScriptedProvider):
            async def translate(self, query, source_language, target_language):  # type: ignore[override]
                await release.wait()
                return await super().translate(query, source_language, target_language)

        provider = _Slow()
        orchestrator = self._build(provider)

        first_task = asyncio.create_task(orchestrator.orchestrate("first"))
        await asyncio.sleep(0)
        self.assertTrue(orchestrator.in_flight)

        busy = await orchestrator.orchestrate("second")
        self.assertEqual(busy.status, "busy")

        release.set()
        first = await first_task
        self.assertEqual(first.status, "translated")
        self.assertFalse(orchestrator.in_flight)
        self.assertEqual(len(provider.translate_calls), 1)

    async def test_provider_timeout_fails_without_cooldown(self) -> None:
        class _Hanging(_ScriptedProvider):
            async def translate(self, query, source_language, target_language):  # type: ignore[override]
                await asyncio.sleep(5)
                return "never"

        orchestrator = self._build(_Hanging(), provider_timeout_seconds=0.05)

        result = await orchestrator.orchestrate("hello")

        self.assertEqual(result.failure, "provider_error")
        self.assertTrue(orchestrator.gate.is_open())
        self.assertFalse(orchestrator.in_flight)
        self.assertTrue(str(orchestrator.snapshot()["last_error"]).startswith("translation_timeout"))

    async def test_unavailable_cache_does_not_block_translation(self) -> None:
        provider = _ScriptedProvider(translation="你好")
        orchestrator = self._build(provider, store=_BrokenStore())

        result = await orchestrator.orchestrate("မင်္ဂလာပါ")

        self.assertEqual(result.status, "translated")
        self.assertEqual(result.translation, "你好")
        self.assertFalse(orchestrator.cache.available)

    async def test_suggestions_skipped_when_disabled(self) -> None:
        provider = _ScriptedProvider()
        orchestrator = self._build(provider, suggestions_enabled=False)

        result = await orchestrator.orchestrate("hello")

        self.assertEqual(result.suggested_replies, [])
        self.assertEqual(provider.suggest_calls, [])

    async def test_detect_mode_uses_separate_key_and_no_source_language(self) -> None:
        provider = _ScriptedProvider(translation="你好")
        orchestrator = self._build(provider, cooldown_window_seconds=0)

        await orchestrator.orchestrate("hello", mode="translate")
        detected = await orchestrator.orchestrate("hello", mode="detect")

        self.assertEqual(detected.status, "translated")
        self.assertEqual(detected.cache_key, "detect:zh:hello")
        self.assertEqual(provider.translate_calls[-1], ("hello", None, "Chinese"))
        self.assertEqual(provider.suggest_calls[-1], ("hello", None))

        with self.assertRaises(ValueError):
            await orchestrator.orchestrate("hello", mode="guess")

    async def test_swap_changes_key_and_carries_text(self) -> None:
        provider = _ScriptedProvider(translation="你好")
        orchestrator = self._build(provider, cooldown_window_seconds=0)

        await orchestrator.orchestrate("မင်္ဂလာပါ")
        snapshot = orchestrator.swap_direction()

        self.assertEqual(snapshot["source_language"], {"code": "zh", "name": "Chinese"})
        self.assertEqual(snapshot["input_text"], "你好")
        self.assertEqual(orchestrator.cache.size(), 1)

        provider.translation = "မင်္ဂလာပါ"
        reverse = await orchestrator.orchestrate("你好")
        self.assertEqual(reverse.status, "translated")
        self.assertEqual(reverse.cache_key, "translate:zh-my:你好")
        self.assertEqual(provider.translate_calls[-1], ("你好", "Chinese", "Burmese"))

    async def test_recent_results_and_reset_session(self) -> None:
        orchestrator = self._build(_ScriptedProvider())

        await orchestrator.orchestrate("hello")
        orchestrator.swap_direction()
        orchestrator.reset_session()

        recent = orchestrator.recent_results(limit=5)
        self.assertEqual(len(recent), 1)
        for key in ("status", "translation", "suggested_replies", "failure", "cache_key"):
            self.assertIn(key, recent[0])
        self.assertTrue(orchestrator.gate.is_open())
        self.assertEqual(orchestrator.direction.current()[0].code, "my")


if __name__ == "__main__":
    unittest.main()
