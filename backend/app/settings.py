from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def load_env_file(env_path: Path) -> None:
    if not env_path.exists():
        return

    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("export "):
            line = line[len("export ") :]

        key, separator, value = line.partition("=")
        if not separator:
            continue

        env_key = key.strip()
        if not env_key:
            continue

        env_value = _strip_quotes(value.strip())
        os.environ.setdefault(env_key, env_value)


def _resolve_project_path(project_root: Path, raw_path: str | None) -> str | None:
    if raw_path is None:
        return None
    candidate = Path(raw_path.strip()).expanduser()
    if not raw_path.strip():
        return None
    if candidate.is_absolute():
        return str(candidate)
    return str((project_root / candidate).resolve())


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_mode(
    key: str,
    default: str,
    allowed: tuple[str, ...],
) -> str:
    value = os.getenv(key, default).strip().lower()
    if value not in allowed:
        allowed_csv = ", ".join(allowed)
        raise ValueError(f"{key} must be one of: {allowed_csv}")
    return value


@dataclass(frozen=True)
class Settings:
    service_name: str
    service_version: str
    environment: str
    log_level: str
    host: str
    port: int
    translation_mode: str
    source_language_code: str
    source_language_name: str
    target_language_code: str
    target_language_name: str
    suggestions_enabled: bool
    cooldown_window_seconds: int
    cooldown_tick_seconds: float
    provider_timeout_seconds: float
    cache_backend: str
    cache_path: str | None
    cache_namespace: str
    swap_text_policy: str
    gemini_model: str
    gemini_api_base_url: str
    gemini_api_key: str | None
    translation_recent_results_limit: int = 50
    translation_temperature: float = 0.2
    translation_output_max_tokens: int = 512
    mock_translation_delay_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.source_language_code == self.target_language_code:
            raise ValueError("source and target language codes must differ")
        if self.cooldown_window_seconds < 0:
            raise ValueError("COOLDOWN_WINDOW_SECONDS must be >= 0")

    @property
    def gemini_key_configured(self) -> bool:
        return bool(self.gemini_api_key)

    def redacted(self) -> dict[str, str | int | float | bool | None]:
        return {
            "service_name": self.service_name,
            "service_version": self.service_version,
            "environment": self.environment,
            "log_level": self.log_level,
            "host": self.host,
            "port": self.port,
            "translation_mode": self.translation_mode,
            "source_language_code": self.source_language_code,
            "source_language_name": self.source_language_name,
            "target_language_code": self.target_language_code,
            "target_language_name": self.target_language_name,
            "suggestions_enabled": self.suggestions_enabled,
            "cooldown_window_seconds": self.cooldown_window_seconds,
            "cooldown_tick_seconds": self.cooldown_tick_seconds,
            "provider_timeout_seconds": self.provider_timeout_seconds,
            "cache_backend": self.cache_backend,
            "cache_path": self.cache_path,
            "cache_namespace": self.cache_namespace,
            "swap_text_policy": self.swap_text_policy,
            "gemini_model": self.gemini_model,
            "gemini_api_base_url": self.gemini_api_base_url,
            "gemini_key_configured": self.gemini_key_configured,
            "translation_recent_results_limit": self.translation_recent_results_limit,
            "translation_temperature": self.translation_temperature,
            "translation_output_max_tokens": self.translation_output_max_tokens,
            "mock_translation_delay_seconds": self.mock_translation_delay_seconds,
        }


def build_settings(project_root: Path) -> Settings:
    load_env_file(project_root / ".env")

    return Settings(
        service_name=os.getenv("BACKEND_SERVICE_NAME", "cs-translator-backend"),
        service_version=os.getenv("BACKEND_SERVICE_VERSION", "0.1.0"),
        environment=os.getenv("BACKEND_ENV", "development"),
        log_level=os.getenv("BACKEND_LOG_LEVEL", "INFO").upper(),
        host=os.getenv("BACKEND_HOST", "127.0.0.1"),
        port=int(os.getenv("BACKEND_PORT", "8000")),
        translation_mode=_env_mode(
            "TRANSLATION_MODE",
            "gemini",
            ("gemini", "mock"),
        ),
        source_language_code=os.getenv("SOURCE_LANGUAGE_CODE", "my").strip(),
        source_language_name=os.getenv("SOURCE_LANGUAGE_NAME", "Burmese").strip(),
        target_language_code=os.getenv("TARGET_LANGUAGE_CODE", "zh").strip(),
        target_language_name=os.getenv("TARGET_LANGUAGE_NAME", "Chinese").strip(),
        suggestions_enabled=_env_bool("SUGGESTIONS_ENABLED", True),
        cooldown_window_seconds=int(os.getenv("COOLDOWN_WINDOW_SECONDS", "30")),
        cooldown_tick_seconds=float(os.getenv("COOLDOWN_TICK_SECONDS", "1.0")),
        provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "20.0")),
        cache_backend=_env_mode("CACHE_BACKEND", "sqlite", ("sqlite", "memory")),
        cache_path=_resolve_project_path(
            project_root,
            os.getenv("CACHE_PATH", "translation_cache.db"),
        ),
        cache_namespace=os.getenv("CACHE_NAMESPACE", "translation_cache").strip()
        or "translation_cache",
        swap_text_policy=_env_mode(
            "SWAP_TEXT_POLICY",
            "exchange",
            ("preserve", "exchange", "clear"),
        ),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        gemini_api_base_url=os.getenv(
            "GEMINI_API_BASE_URL",
            "https://generativelanguage.googleapis.com/v1beta",
        ),
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        translation_recent_results_limit=int(
            os.getenv("TRANSLATION_RECENT_RESULTS_LIMIT", "50")
        ),
        translation_temperature=float(
            os.getenv("TRANSLATION_TEMPERATURE", "0.2")
        ),
        translation_output_max_tokens=int(
            os.getenv("TRANSLATION_OUTPUT_MAX_TOKENS", "512")
        ),
        mock_translation_delay_seconds=float(
            os.getenv("MOCK_TRANSLATION_DELAY_SECONDS", "0.0")
        ),
    )
