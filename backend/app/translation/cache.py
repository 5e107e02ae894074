from __future__ import annotations

import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from backend.app.translation.types import (
    ERROR_STORE_UNAVAILABLE,
    MODE_DETECT,
    MODE_TRANSLATE,
    CacheEntry,
    Language,
)

_NAMESPACE_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StoreUnavailable(Exception):
    """Raised when the cache medium cannot be read or written."""


def normalize_query(query: str) -> str:
    # Case and internal whitespace are significant for non-Latin scripts.
    return query.strip()


def make_cache_key(
    mode: str,
    query: str,
    source_language: Language,
    target_language: Language,
) -> str:
    normalized = normalize_query(query)
    if mode == MODE_TRANSLATE:
        mode_tag = f"translate:{source_language.code}-{target_language.code}"
    elif mode == MODE_DETECT:
        mode_tag = f"detect:{target_language.code}"
    else:
        raise ValueError(f"unsupported translation mode: {mode}")
    return f"{mode_tag}:{normalized}"


class CacheStore(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def load(self, key: str) -> CacheEntry | None:
        raise NotImplementedError

    @abstractmethod
    def save(self, entry: CacheEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_all(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def count(self) -> int:
        raise NotImplementedError

    def close(self) -> None:
        return None


class InMemoryCacheStore(CacheStore):
    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    @property
    def name(self) -> str:
        return "memory"

    def load(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def save(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry

    def delete_all(self) -> None:
        self._entries.clear()

    def count(self) -> int:
        return len(self._entries)


class SqliteCacheStore(CacheStore):
    """Flat key/value table in a SQLite file, one table per namespace."""

    def __init__(self, path: str, namespace: str = "translation_cache") -> None:
        if not _NAMESPACE_PATTERN.match(namespace):
            raise ValueError(f"invalid cache namespace: {namespace!r}")
        self._path = path
        self._namespace = namespace
        self._conn: sqlite3.Connection | None = None

    @property
    def name(self) -> str:
        return f"sqlite:{self._namespace}"

    def load(self, key: str) -> CacheEntry | None:
        try:
            cursor = self._connection().execute(
                f"SELECT key, value, stored_at FROM {self._namespace} WHERE key = ?",
                (key,),
            )
            row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"sqlite_load_failed:{exc}") from exc

        if row is None:
            return None
        try:
            stored_at = datetime.fromisoformat(row[2])
        except (TypeError, ValueError) as exc:
            raise StoreUnavailable(f"sqlite_corrupt_entry:{exc}") from exc
        return CacheEntry(key=row[0], value=row[1], stored_at=stored_at)

    def save(self, entry: CacheEntry) -> None:
        try:
            conn = self._connection()
            conn.execute(
                f"INSERT OR REPLACE INTO {self._namespace} (key, value, stored_at) "
                "VALUES (?, ?, ?)",
                (entry.key, entry.value, entry.stored_at.isoformat()),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"sqlite_save_failed:{exc}") from exc

    def delete_all(self) -> None:
        try:
            conn = self._connection()
            conn.execute(f"DELETE FROM {self._namespace}")
            conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"sqlite_clear_failed:{exc}") from exc

    def count(self) -> int:
        try:
            cursor = self._connection().execute(f"SELECT COUNT(*) FROM {self._namespace}")
            row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"sqlite_count_failed:{exc}") from exc
        return int(row[0]) if row else 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn

        conn = sqlite3.connect(self._path, check_same_thread=False)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self._namespace} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    stored_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
        except sqlite3.Error:
            conn.close()
            raise
        self._conn = conn
        return conn


class TranslationCache:
    """Best-effort memoization of translations keyed by request fingerprint.

    Store failures are logged and treated as a miss on read and a no-op on
    write, so the translation path never fails because of the cache. Entries
    never expire; ``clear`` is the only way to drop them.
    """

    def __init__(self, store: CacheStore, logger: logging.Logger) -> None:
        self._store = store
        self._logger = logger
        self._available = True

    @property
    def store_name(self) -> str:
        return self._store.name

    @property
    def available(self) -> bool:
        return self._available

    def get(self, key: str) -> str | None:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def get_entry(self, key: str) -> CacheEntry | None:
        try:
            entry = self._store.load(key)
        except StoreUnavailable as exc:
            self._mark_unavailable("cache_get_failed", exc, key)
            return None
        self._available = True
        return entry

    def put(self, key: str, value: str) -> None:
        entry = CacheEntry(key=key, value=value, stored_at=datetime.now(timezone.utc))
        try:
            self._store.save(entry)
        except StoreUnavailable as exc:
            self._mark_unavailable("cache_put_failed", exc, key)
            return
        self._available = True

    def clear(self) -> None:
        try:
            self._store.delete_all()
        except StoreUnavailable as exc:
            self._mark_unavailable("cache_clear_failed", exc, None)
            return
        self._available = True

    def size(self) -> int:
        try:
            return self._store.count()
        except StoreUnavailable as exc:
            self._mark_unavailable("cache_count_failed", exc, None)
            return 0

    def close(self) -> None:
        self._store.close()

    def _mark_unavailable(self, event: str, exc: StoreUnavailable, key: str | None) -> None:
        self._available = False
        self._logger.warning(
            event,
            extra={
                "event": event,
                "error_kind": ERROR_STORE_UNAVAILABLE,
                "store": self._store.name,
                "cache_key": key,
                "reason": str(exc),
            },
        )
