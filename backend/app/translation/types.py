from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

MODE_TRANSLATE = "translate"
MODE_DETECT = "detect"
TRANSLATION_MODES = (MODE_TRANSLATE, MODE_DETECT)

STATUS_EMPTY = "empty"
STATUS_BUSY = "busy"
STATUS_GATED = "gated"
STATUS_CACHED = "cached"
STATUS_TRANSLATED = "translated"
STATUS_FAILED = "failed"

ERROR_EMPTY_INPUT = "empty_input"
ERROR_GATED = "gated"
ERROR_PROVIDER = "provider_error"
ERROR_STORE_UNAVAILABLE = "store_unavailable"

SWAP_PRESERVE = "preserve"
SWAP_EXCHANGE = "exchange"
SWAP_CLEAR = "clear"
SWAP_POLICIES = (SWAP_PRESERVE, SWAP_EXCHANGE, SWAP_CLEAR)

PROVIDER_FAILURE_MESSAGE = "Failed to get translation. Please try again."


@dataclass(frozen=True)
class Language:
    code: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "name": self.name}


@dataclass(frozen=True)
class TranslationRequest:
    query: str
    source_language: Language
    target_language: Language
    mode: str = MODE_TRANSLATE

    def __post_init__(self) -> None:
        if not self.query.strip():
            raise ValueError("query must not be blank")
        if self.source_language.code == self.target_language.code:
            raise ValueError("source and target languages must differ")
        if self.mode not in TRANSLATION_MODES:
            raise ValueError(f"unsupported translation mode: {self.mode}")


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: str
    stored_at: datetime


@dataclass(frozen=True)
class OrchestrationResult:
    status: str
    source_language: Language
    target_language: Language
    translation: str | None = None
    suggested_replies: list[str] = field(default_factory=list)
    failure: str | None = None
    message: str | None = None
    cache_key: str | None = None
    cooldown_remaining_seconds: int = 0
    latency_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.translation is not None and self.failure is None

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "translation": self.translation,
            "suggested_replies": list(self.suggested_replies),
            "failure": self.failure,
            "message": self.message,
            "cache_key": self.cache_key,
            "source_language": self.source_language.to_dict(),
            "target_language": self.target_language.to_dict(),
            "cooldown_remaining_seconds": self.cooldown_remaining_seconds,
            "latency_ms": self.latency_ms,
        }
