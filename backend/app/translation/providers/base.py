from __future__ import annotations

from abc import ABC, abstractmethod


class TranslationProviderError(Exception):
    """Raised when a translation provider call fails or returns nothing usable."""


class TranslationProvider(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        raise NotImplementedError

    @property
    def supports_suggestions(self) -> bool:
        return False

    @abstractmethod
    async def translate(
        self,
        query: str,
        source_language: str | None,
        target_language: str,
    ) -> str:
        """Translate ``query``; a ``None`` source asks the provider to detect it."""
        raise NotImplementedError

    async def suggest_replies(self, text: str, language: str | None) -> list[str]:
        raise TranslationProviderError(f"{self.name} does not suggest replies")

    async def aclose(self) -> None:
        return None
