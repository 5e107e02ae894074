from __future__ import annotations

import json
from typing import Any

import httpx

from backend.app.settings import Settings
from backend.app.translation.providers.base import (
    TranslationProvider,
    TranslationProviderError,
)


class GeminiTranslationProvider(TranslationProvider):
    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not settings.gemini_api_key:
            raise TranslationProviderError("GEMINI_API_KEY is required for gemini mode")
        self._settings = settings
        self._model_name = settings.gemini_model.removeprefix("models/")
        self._transport = transport

    @property
    def name(self) -> str:
        return "gemini-translation-provider"

    @property
    def supports_suggestions(self) -> bool:
        return True

    async def translate(
        self,
        query: str,
        source_language: str | None,
        target_language: str,
    ) -> str:
        prompt = self._build_translation_prompt(query, source_language, target_language)
        payload = await self._generate(prompt, response_mime_type="text/plain")
        text, finish_reason = self._extract_text(payload)
        if not text:
            reason = f":{finish_reason}" if finish_reason else ""
            raise TranslationProviderError(f"gemini_empty_text_response{reason}")
        return text

    async def suggest_replies(self, text: str, language: str | None) -> list[str]:
        prompt = self._build_suggestion_prompt(text, language)
        payload = await self._generate(prompt, response_mime_type="application/json")
        raw, finish_reason = self._extract_text(payload)
        if not raw:
            reason = f":{finish_reason}" if finish_reason else ""
            raise TranslationProviderError(f"gemini_empty_suggestion_response{reason}")
        return self._parse_suggestions(raw)

    async def _generate(self, prompt: str, response_mime_type: str) -> dict[str, Any]:
        endpoint = (
            f"{self._settings.gemini_api_base_url}/models/"
            f"{self._model_name}:generateContent"
        )
        headers = {"x-goog-api-key": self._settings.gemini_api_key}
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self._settings.translation_temperature,
                "maxOutputTokens": self._settings.translation_output_max_tokens,
                "responseMimeType": response_mime_type,
            },
        }

        limit = self._settings.provider_timeout_seconds
        timeout = httpx.Timeout(limit if limit > 0 else None)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(endpoint, headers=headers, json=body)
        except httpx.RequestError as exc:
            raise TranslationProviderError(f"gemini_request_error:{exc}") from exc

        if response.status_code == 429:
            retry_after = self._parse_retry_after_seconds(response.headers.get("retry-after"))
            if retry_after is not None:
                raise TranslationProviderError(
                    f"gemini_rate_limited:{round(retry_after, 3)}"
                )
            raise TranslationProviderError("gemini_rate_limited")

        if response.status_code != 200:
            raise TranslationProviderError(f"gemini_status_error:{response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TranslationProviderError("gemini_invalid_json_response") from exc
        if not isinstance(payload, dict):
            raise TranslationProviderError("gemini_invalid_json_response")
        return payload

    def _build_translation_prompt(
        self,
        query: str,
        source_language: str | None,
        target_language: str,
    ) -> str:
        if source_language is None:
            lead = (
                "Detect the language of the following customer service query and "
                f"translate it to {target_language}"
            )
        else:
            lead = (
                f"Translate the following {source_language} customer service query "
                f"to {target_language}"
            )
        return (
            f"{lead}, optimizing for phrases commonly used in online betting "
            "customer service:\n\n"
            f"Query: {query}\n\n"
            "Return only the translated text."
        )

    def _build_suggestion_prompt(self, text: str, language: str | None) -> str:
        language_hint = language or "the same language as the text"
        return (
            "You are a customer service AI assistant specializing in an online "
            "betting platform.\n"
            f"Given the following text in {language_hint}, suggest 1 improved or "
            "alternative phrase that is clearer, more polite, or more effective "
            "for customer communication.\n"
            "Provide ONLY the reply itself, as a JSON array of one string.\n\n"
            f"Text: {text}"
        )

    def _extract_text(self, payload: dict[str, Any]) -> tuple[str, str | None]:
        candidates = payload.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return "", None

        first = candidates[0]
        if not isinstance(first, dict):
            return "", None
        finish_reason = first.get("finishReason")
        content = first.get("content", {})
        parts = content.get("parts", []) if isinstance(content, dict) else []
        if not isinstance(parts, list):
            return "", str(finish_reason) if finish_reason else None

        segments: list[str] = []
        for part in parts:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                segments.append(part["text"])

        text = "".join(segments).strip()
        return text, str(finish_reason) if finish_reason else None

    def _parse_suggestions(self, raw: str) -> list[str]:
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            cleaned = cleaned.strip("`")
            cleaned = cleaned.removeprefix("json").strip()

        try:
            parsed = json.loads(cleaned)
        except ValueError as exc:
            raise TranslationProviderError("gemini_invalid_suggestion_json") from exc

        if isinstance(parsed, dict):
            parsed = parsed.get("suggestedReplies", parsed.get("suggested_replies"))
        if isinstance(parsed, str):
            parsed = [parsed]
        if not isinstance(parsed, list):
            raise TranslationProviderError("gemini_invalid_suggestion_shape")

        return [item.strip() for item in parsed if isinstance(item, str) and item.strip()]

    def _parse_retry_after_seconds(self, raw: str | None) -> float | None:
        if not raw:
            return None
        value = raw.strip()
        if not value:
            return None
        try:
            parsed = float(value)
        except ValueError:
            return None
        if parsed < 0:
            return None
        return parsed
