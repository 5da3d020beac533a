"""
LLM response caching layer.

Bounded, time-expiring LRU cache of finished GenerationResults keyed by
request fingerprint. Identical requests return the cached result without
calling the provider.

Entries expire lazily (checked on lookup) and are evicted least-recently-used
first once the entry bound is exceeded. An optional KeyValueStore acts as a
write-through persistence tier: a memory miss falls back to the store and
re-hydrates the entry with its original expiry. The store is best-effort: a
store that cannot be reached is logged and the cache keeps serving from
memory.

All operations take a single lock; lookups are short and never block on I/O
other than the optional store.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

import redis
from pydantic import BaseModel, ValidationError

from ai_bridge.llm_adapter.models import GenerationResult
from ai_bridge.llm_adapter.store import KeyValueStore

logger = logging.getLogger(__name__)

_KEY_PREFIX = "llm_cache:"


@dataclass
class CacheEntry:
    fingerprint: str
    result: GenerationResult
    expires_at: float


class _StoredEntry(BaseModel):
    result: GenerationResult
    expires_at: float


class ResponseCache:

    def __init__(
        self,
        max_entries: int = 1024,
        store: KeyValueStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._max_entries = max_entries
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, fingerprint: str) -> GenerationResult | None:
        with self._lock:
            now = self._clock()
            entry = self._entries.get(fingerprint)
            if entry is None and self._store is not None:
                entry = self._load(fingerprint, now)

            if entry is None:
                self.misses += 1
                logger.debug("LLM cache MISS for key %s", fingerprint[:16])
                return None

            if entry.expires_at <= now:
                self._entries.pop(fingerprint, None)
                self._store_delete(fingerprint)
                self.misses += 1
                logger.debug("LLM cache EXPIRED for key %s", fingerprint[:16])
                return None

            self._entries.move_to_end(fingerprint)
            self.hits += 1
            logger.debug("LLM cache HIT for key %s", fingerprint[:16])
            return entry.result

    def put(self, fingerprint: str, result: GenerationResult, ttl_seconds: int) -> None:
        with self._lock:
            expires_at = self._clock() + ttl_seconds
            self._entries.pop(fingerprint, None)
            self._entries[fingerprint] = CacheEntry(fingerprint, result, expires_at)
            self._evict_overflow()

            if self._store is not None:
                payload = _StoredEntry(result=result, expires_at=expires_at)
                try:
                    self._store.set(
                        _KEY_PREFIX + fingerprint,
                        payload.model_dump_json(),
                        ttl_seconds,
                    )
                except redis.RedisError as exc:
                    logger.warning(
                        "Cache store write failed for key %s: %s", fingerprint[:16], exc
                    )

    def invalidate(self, fingerprint: str) -> None:
        with self._lock:
            self._entries.pop(fingerprint, None)
            self._store_delete(fingerprint)

    def clear(self) -> None:
        """Drop the in-memory tier. The persistence tier expires on its own."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            entry = self._entries.get(fingerprint)  # type: ignore[arg-type]
            return entry is not None and entry.expires_at > self._clock()

    def _evict_overflow(self) -> None:
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("LLM cache evicted LRU key %s", evicted[:16])

    def _store_delete(self, fingerprint: str) -> None:
        if self._store is None:
            return
        try:
            self._store.delete(_KEY_PREFIX + fingerprint)
        except redis.RedisError as exc:
            logger.warning("Cache store delete failed for key %s: %s", fingerprint[:16], exc)

    def _load(self, fingerprint: str, now: float) -> CacheEntry | None:
        try:
            raw = self._store.get(_KEY_PREFIX + fingerprint)
        except redis.RedisError as exc:
            logger.warning("Cache store read failed for key %s: %s", fingerprint[:16], exc)
            return None
        if raw is None:
            return None
        try:
            stored = _StoredEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding corrupt cache entry %s", fingerprint[:16])
            self._store_delete(fingerprint)
            return None

        entry = CacheEntry(fingerprint, stored.result, stored.expires_at)
        if entry.expires_at > now:
            self._entries[fingerprint] = entry
            self._evict_overflow()
        return entry
