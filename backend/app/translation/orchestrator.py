from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from time import monotonic
from typing import Any, Awaitable

from backend.app.settings import Settings
from backend.app.translation.cache import (
    InMemoryCacheStore,
    SqliteCacheStore,
    TranslationCache,
    make_cache_key,
    normalize_query,
)
from backend.app.translation.cooldown import CooldownGate
from backend.app.translation.direction import LanguageDirectionState
from backend.app.translation.providers.base import (
    TranslationProvider,
    TranslationProviderError,
)
from backend.app.translation.providers.gemini import GeminiTranslationProvider
from backend.app.translation.providers.mock import MockTranslationProvider
from backend.app.translation.types import (
    ERROR_EMPTY_INPUT,
    ERROR_GATED,
    ERROR_PROVIDER,
    MODE_DETECT,
    MODE_TRANSLATE,
    PROVIDER_FAILURE_MESSAGE,
    STATUS_BUSY,
    STATUS_CACHED,
    STATUS_EMPTY,
    STATUS_FAILED,
    STATUS_GATED,
    STATUS_TRANSLATED,
    TRANSLATION_MODES,
    Language,
    OrchestrationResult,
    TranslationRequest,
)


_REJECTION_KINDS = {STATUS_EMPTY: ERROR_EMPTY_INPUT, STATUS_GATED: ERROR_GATED}


@dataclass
class OrchestratorMetrics:
    provider_name: str | None = None
    cache_store: str | None = None
    started_at: str | None = None
    running: bool = False
    healthy: bool = True
    attempts: int = 0
    empty_rejections: int = 0
    busy_rejections: int = 0
    gated_rejections: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    provider_calls: int = 0
    suggestion_calls: int = 0
    suggestion_failures: int = 0
    translations: int = 0
    failures: int = 0
    average_dispatch_ms: float = 0.0
    last_dispatch_ms: float = 0.0
    last_result_at: str | None = None
    last_error: str | None = None


class RequestOrchestrator:
    """Serves one session's translate actions.

    Each call to :meth:`orchestrate` is rejected (busy, empty input, cooldown),
    answered from the cache, or dispatched to the provider. On dispatch the
    translation and the reply suggestion run concurrently and are merged: a
    failed translation fails the whole attempt, a failed suggestion only
    empties the suggestion list. Only successful dispatches are cached and
    arm the cooldown.
    """

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        provider_override: TranslationProvider | None = None,
        cache: TranslationCache | None = None,
        gate: CooldownGate | None = None,
        direction: LanguageDirectionState | None = None,
    ) -> None:
        self._settings = settings
        self._logger = logger
        self._provider = provider_override or self._build_provider(settings)
        self._cache = cache or self._build_cache(settings, logger)
        self._gate = gate or CooldownGate(logger=logger, tick_seconds=settings.cooldown_tick_seconds)
        self._direction = direction or LanguageDirectionState(
            Language(settings.source_language_code, settings.source_language_name),
            Language(settings.target_language_code, settings.target_language_name),
            swap_policy=settings.swap_text_policy,
        )
        self._metrics = OrchestratorMetrics(
            provider_name=self._provider.name,
            cache_store=self._cache.store_name,
        )
        self._lock = asyncio.Lock()
        self._in_flight = False
        self._recent_results: deque[OrchestrationResult] = deque(
            maxlen=max(1, settings.translation_recent_results_limit)
        )

    @property
    def cache(self) -> TranslationCache:
        return self._cache

    @property
    def gate(self) -> CooldownGate:
        return self._gate

    @property
    def direction(self) -> LanguageDirectionState:
        return self._direction

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def suggestions_active(self) -> bool:
        return self._settings.suggestions_enabled and self._provider.supports_suggestions

    async def start(self) -> None:
        await self._gate.start()
        async with self._lock:
            self._metrics.running = True
            self._metrics.healthy = True
            self._metrics.started_at = datetime.now(timezone.utc).isoformat()

        self._logger.info(
            "orchestrator_started",
            extra={
                "event": "orchestrator_started",
                "service_name": self._settings.service_name,
                "service_version": self._settings.service_version,
                "provider_name": self._provider.name,
                "cache_store": self._cache.store_name,
                "suggestions_active": self.suggestions_active,
            },
        )

    async def stop(self) -> None:
        await self._gate.stop()
        await self._provider.aclose()
        self._cache.close()
        async with self._lock:
            self._metrics.running = False

    async def orchestrate(
        self,
        raw_input: str,
        mode: str = MODE_TRANSLATE,
    ) -> OrchestrationResult:
        if mode not in TRANSLATION_MODES:
            raise ValueError(f"unsupported translation mode: {mode}")

        source, target = self._direction.current()
        # The busy check and the flag update below must not be separated by an await.
        if self._in_flight:
            return await self._reject(STATUS_BUSY, source, target)

        query = normalize_query(raw_input or "")
        if not query:
            return await self._reject(STATUS_EMPTY, source, target)

        if not self._gate.is_open():
            return await self._reject(STATUS_GATED, source, target)

        request = TranslationRequest(
            query=query,
            source_language=source,
            target_language=target,
            mode=mode,
        )
        cache_key = make_cache_key(mode, query, source, target)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return await self._serve_cached(request, cache_key, cached)

        self._in_flight = True
        try:
            return await self._dispatch(request, cache_key)
        finally:
            self._in_flight = False

    def swap_direction(self) -> dict[str, object]:
        self._direction.swap()
        return self._direction.snapshot()

    def clear_cache(self) -> None:
        self._cache.clear()
        self._logger.info("translation_cache_cleared", extra={"event": "cache_cleared"})

    def reset_session(self) -> None:
        self._gate.reset()
        self._direction.reset()

    def snapshot(self) -> dict[str, object]:
        payload = asdict(self._metrics)
        payload["in_flight"] = self._in_flight
        payload["suggestions_active"] = self.suggestions_active
        payload["cooldown"] = self._gate.snapshot()
        payload["direction"] = self._direction.snapshot()
        payload["cache_available"] = self._cache.available
        payload["cache_size"] = self._cache.size()
        payload["recent_results_count"] = len(self._recent_results)
        return payload

    def recent_results(self, limit: int = 10) -> list[dict[str, object]]:
        bounded = max(1, min(limit, 100))
        return [item.to_dict() for item in list(self._recent_results)[-bounded:]][::-1]

    def _build_provider(self, settings: Settings) -> TranslationProvider:
        if settings.translation_mode == "mock":
            return MockTranslationProvider(
                delay_seconds=settings.mock_translation_delay_seconds,
                suggestions_enabled=settings.suggestions_enabled,
            )

        if settings.translation_mode == "gemini":
            return GeminiTranslationProvider(settings=settings)

        raise ValueError("unsupported translation mode. Expected 'mock' or 'gemini'.")

    def _build_cache(self, settings: Settings, logger: logging.Logger) -> TranslationCache:
        if settings.cache_backend == "sqlite" and settings.cache_path:
            store = SqliteCacheStore(settings.cache_path, namespace=settings.cache_namespace)
        else:
            store = InMemoryCacheStore()
        return TranslationCache(store=store, logger=logger)

    async def _reject(
        self,
        status: str,
        source: Language,
        target: Language,
    ) -> OrchestrationResult:
        async with self._lock:
            self._metrics.attempts += 1
            if status == STATUS_BUSY:
                self._metrics.busy_rejections += 1
            elif status == STATUS_EMPTY:
                self._metrics.empty_rejections += 1
            elif status == STATUS_GATED:
                self._metrics.gated_rejections += 1

        self._logger.debug(
            "orchestration_rejected",
            extra={
                "event": "orchestration_rejected",
                "status": status,
                "error_kind": _REJECTION_KINDS.get(status),
                "cooldown_remaining_seconds": self._gate.remaining_seconds,
            },
        )
        return OrchestrationResult(
            status=status,
            source_language=source,
            target_language=target,
            cooldown_remaining_seconds=self._gate.remaining_seconds,
        )

    async def _serve_cached(
        self,
        request: TranslationRequest,
        cache_key: str,
        translation: str,
    ) -> OrchestrationResult:
        self._direction.record(request.query, translation)
        result = OrchestrationResult(
            status=STATUS_CACHED,
            source_language=request.source_language,
            target_language=request.target_language,
            translation=translation,
            cache_key=cache_key,
            cooldown_remaining_seconds=self._gate.remaining_seconds,
        )
        self._recent_results.append(result)

        async with self._lock:
            self._metrics.attempts += 1
            self._metrics.cache_hits += 1
            self._metrics.last_result_at = datetime.now(timezone.utc).isoformat()

        self._logger.info(
            "orchestration_cached",
            extra={"event": "orchestration_cached", "cache_key": cache_key},
        )
        return result

    async def _dispatch(
        self,
        request: TranslationRequest,
        cache_key: str,
    ) -> OrchestrationResult:
        started = monotonic()
        source_name = None if request.mode == MODE_DETECT else request.source_language.name

        calls: list[Awaitable[Any]] = [
            self._bounded(
                self._provider.translate(
                    request.query,
                    source_name,
                    request.target_language.name,
                ),
                "translation",
            )
        ]
        with_suggestions = self.suggestions_active
        if with_suggestions:
            calls.append(
                self._bounded(
                    self._provider.suggest_replies(request.query, source_name),
                    "suggestion",
                )
            )

        outcomes = await asyncio.gather(*calls, return_exceptions=True)
        latency_ms = round((monotonic() - started) * 1000.0, 3)

        translation_outcome = outcomes[0]
        suggestion_outcome = outcomes[1] if with_suggestions else []

        suggestion_failed = isinstance(suggestion_outcome, BaseException)
        async with self._lock:
            self._metrics.attempts += 1
            self._metrics.cache_misses += 1
            self._metrics.provider_calls += 1
            if with_suggestions:
                self._metrics.suggestion_calls += 1
            if suggestion_failed:
                self._metrics.suggestion_failures += 1

        translation, failure_reason = self._merge_translation(translation_outcome)
        suggestions = self._merge_suggestions(suggestion_outcome, cache_key)

        if translation is None:
            return await self._fail(request, cache_key, failure_reason, latency_ms)

        self._cache.put(cache_key, translation)
        self._gate.arm(self._settings.cooldown_window_seconds)
        self._direction.record(request.query, translation)

        result = OrchestrationResult(
            status=STATUS_TRANSLATED,
            source_language=request.source_language,
            target_language=request.target_language,
            translation=translation,
            suggested_replies=suggestions,
            cache_key=cache_key,
            cooldown_remaining_seconds=self._gate.remaining_seconds,
            latency_ms=latency_ms,
        )
        self._recent_results.append(result)

        async with self._lock:
            previous_count = self._metrics.translations
            previous_avg = self._metrics.average_dispatch_ms
            self._metrics.translations += 1
            self._metrics.last_dispatch_ms = latency_ms
            self._metrics.last_result_at = datetime.now(timezone.utc).isoformat()
            self._metrics.healthy = True
            self._metrics.last_error = None
            self._metrics.average_dispatch_ms = round(
                ((previous_avg * previous_count) + latency_ms)
                / max(1, self._metrics.translations),
                3,
            )

        self._logger.info(
            "orchestration_translated",
            extra={
                "event": "orchestration_translated",
                "cache_key": cache_key,
                "latency_ms": latency_ms,
                "suggestion_count": len(suggestions),
            },
        )
        return result

    async def _fail(
        self,
        request: TranslationRequest,
        cache_key: str,
        reason: str,
        latency_ms: float,
    ) -> OrchestrationResult:
        result = OrchestrationResult(
            status=STATUS_FAILED,
            source_language=request.source_language,
            target_language=request.target_language,
            failure=ERROR_PROVIDER,
            message=PROVIDER_FAILURE_MESSAGE,
            cache_key=cache_key,
            cooldown_remaining_seconds=self._gate.remaining_seconds,
            latency_ms=latency_ms,
        )
        self._recent_results.append(result)

        async with self._lock:
            self._metrics.failures += 1
            self._metrics.healthy = False
            self._metrics.last_error = reason
            self._metrics.last_result_at = datetime.now(timezone.utc).isoformat()

        self._logger.warning(
            "orchestration_failed",
            extra={
                "event": "orchestration_failed",
                "error_kind": ERROR_PROVIDER,
                "cache_key": cache_key,
                "reason": reason,
                "latency_ms": latency_ms,
            },
        )
        return result

    async def _bounded(self, call: Awaitable[Any], label: str) -> Any:
        timeout = self._settings.provider_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout if timeout > 0 else None)
        except asyncio.TimeoutError as exc:
            raise TranslationProviderError(f"{label}_timeout:{timeout}") from exc

    def _merge_translation(self, outcome: Any) -> tuple[str | None, str]:
        if isinstance(outcome, TranslationProviderError):
            return None, str(outcome) or "translation_failed"
        if isinstance(outcome, BaseException):
            self._logger.error(
                "translation_call_error",
                exc_info=outcome,
                extra={"event": "translation_call_error", "reason": repr(outcome)},
            )
            return None, f"translation_unexpected_error:{type(outcome).__name__}"
        if not isinstance(outcome, str) or not outcome.strip():
            return None, "translation_empty_result"
        return outcome.strip(), ""

    def _merge_suggestions(self, outcome: Any, cache_key: str) -> list[str]:
        if isinstance(outcome, BaseException):
            self._logger.warning(
                "suggestion_call_failed",
                extra={
                    "event": "suggestion_call_failed",
                    "cache_key": cache_key,
                    "reason": str(outcome) or type(outcome).__name__,
                },
            )
            return []
        if not isinstance(outcome, list):
            return []
        return [item.strip() for item in outcome if isinstance(item, str) and item.strip()]
