"""
Recommendation cache keyed by ``(wedding_id, category)``.

Two backends share one string-payload contract:

- ``MemoryCacheBackend``: process-local, for tests and single-worker dev.
- ``RedisCacheBackend``: shared across workers. Each entry is written with
  SETEX and indexed in a per-wedding set so a wedding can be invalidated in
  one transaction.

Each wedding also carries a "last changed" marker. An entry computed before
the marker is stale even within its TTL, so a scoring run that overlapped a
preference or interest change never serves its result.

Backend failures surface as ``CacheUnavailable``; callers treat the cache as
optional and compute fresh.
"""
from __future__ import annotations

import threading
import time
from typing import Callable

import redis
from pydantic import ValidationError

from ..config import DEFAULT_CONFIG, RecommendationConfig
from ..errors import CacheUnavailable
from .models import CacheEntry

KEY_PREFIX = "vendor_recs"
ALL_CATEGORIES = "*"


def make_key(wedding_id: str, category: str | None) -> str:
    return f"{KEY_PREFIX}:{wedding_id}:{category or ALL_CATEGORIES}"


def _index_key(wedding_id: str) -> str:
    return f"{KEY_PREFIX}-index:{wedding_id}"


def _changed_key(wedding_id: str) -> str:
    return f"{KEY_PREFIX}-changed:{wedding_id}"


class MemoryCacheBackend:
    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, float]] = {}
        self._index: dict[str, set[str]] = {}
        self._changed: dict[str, float] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        item = self._entries.get(key)
        if item is None:
            return None
        payload, expires_at = item
        if time.time() >= expires_at:
            with self._lock:
                self._entries.pop(key, None)
            return None
        return payload

    def set(self, wedding_id: str, key: str, payload: str, ttl: int) -> None:
        with self._lock:
            self._entries[key] = (payload, time.time() + ttl)
            self._index.setdefault(wedding_id, set()).add(key)

    def keys_for(self, wedding_id: str) -> list[str]:
        return sorted(self._index.get(wedding_id, set()))

    def mark_changed(self, wedding_id: str, changed_at: float) -> None:
        with self._lock:
            self._changed[wedding_id] = max(changed_at, self._changed.get(wedding_id, 0.0))

    def changed_at(self, wedding_id: str) -> float | None:
        return self._changed.get(wedding_id)

    def delete_wedding(self, wedding_id: str) -> None:
        with self._lock:
            for key in self._index.pop(wedding_id, set()):
                self._entries.pop(key, None)

    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._index.clear()
            self._changed.clear()


class RedisCacheBackend:
    def __init__(self, client: redis.Redis, index_ttl: int = 86400) -> None:
        self.client = client
        # Outlives every entry it indexes; stale members are harmless
        self.index_ttl = index_ttl

    @classmethod
    def from_url(cls, url: str, index_ttl: int = 86400) -> "RedisCacheBackend":
        client = redis.Redis.from_url(url, socket_timeout=0.5, decode_responses=True)
        return cls(client, index_ttl=index_ttl)

    def get(self, key: str) -> str | None:
        try:
            return self.client.get(key)
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Cache read failed: {exc}") from exc

    def set(self, wedding_id: str, key: str, payload: str, ttl: int) -> None:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.setex(key, ttl, payload)
            pipe.sadd(_index_key(wedding_id), key)
            pipe.expire(_index_key(wedding_id), self.index_ttl)
            pipe.execute()
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Cache write failed: {exc}") from exc

    def keys_for(self, wedding_id: str) -> list[str]:
        try:
            return sorted(self.client.smembers(_index_key(wedding_id)))
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Cache index read failed: {exc}") from exc

    def mark_changed(self, wedding_id: str, changed_at: float) -> None:
        try:
            self.client.set(_changed_key(wedding_id), repr(changed_at), ex=self.index_ttl)
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Cache change marker write failed: {exc}") from exc

    def changed_at(self, wedding_id: str) -> float | None:
        try:
            raw = self.client.get(_changed_key(wedding_id))
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Cache change marker read failed: {exc}") from exc
        return float(raw) if raw is not None else None

    def delete_wedding(self, wedding_id: str) -> None:
        try:
            keys = self.client.smembers(_index_key(wedding_id))
            pipe = self.client.pipeline(transaction=True)
            if keys:
                pipe.delete(*keys)
            pipe.delete(_index_key(wedding_id))
            pipe.execute()
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Cache invalidation failed: {exc}") from exc

    def size(self) -> int:
        try:
            return sum(1 for _ in self.client.scan_iter(match=f"{KEY_PREFIX}:*"))
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Cache scan failed: {exc}") from exc

    def clear(self) -> None:
        try:
            keys = list(self.client.scan_iter(match=f"{KEY_PREFIX}*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as exc:
            raise CacheUnavailable(f"Cache clear failed: {exc}") from exc


class RecommendationCache:
    def __init__(self, backend, ttl_seconds: int = DEFAULT_CONFIG.cache_ttl_seconds) -> None:
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self.hits = 0
        self.misses = 0
        self.errors = 0

    def _decode(self, payload: str | None) -> CacheEntry | None:
        if payload is None:
            return None
        try:
            return CacheEntry.model_validate_json(payload)
        except ValidationError:
            return None

    def _fresh(self, entry: CacheEntry) -> bool:
        return time.time() - entry.computed_at < self.ttl_seconds

    @staticmethod
    def _current(entry: CacheEntry, changed_at: float | None) -> bool:
        """False when a change was recorded after the entry's inputs were read."""
        if changed_at is None:
            return True
        return (entry.synced_at or entry.computed_at) >= changed_at

    def get(self, wedding_id: str, category: str | None) -> CacheEntry | None:
        try:
            entry = self._decode(self.backend.get(make_key(wedding_id, category)))
            changed_at = self.backend.changed_at(wedding_id) if entry is not None else None
        except CacheUnavailable:
            self.errors += 1
            raise
        if entry is None or not self._fresh(entry) or not self._current(entry, changed_at):
            self.misses += 1
            return None
        self.hits += 1
        return entry.model_copy(update={"from_cache": True})

    def put(self, entry: CacheEntry) -> None:
        stored = entry.model_copy(update={"from_cache": False})
        try:
            self.backend.set(
                entry.wedding_id,
                make_key(entry.wedding_id, entry.category),
                stored.model_dump_json(),
                self.ttl_seconds,
            )
        except CacheUnavailable:
            self.errors += 1
            raise

    def invalidate(self, wedding_id: str) -> None:
        try:
            self.backend.mark_changed(wedding_id, time.time())
            self.backend.delete_wedding(wedding_id)
        except CacheUnavailable:
            self.errors += 1
            raise

    def update(
        self, wedding_id: str, patch: Callable[[CacheEntry], CacheEntry | None]
    ) -> int:
        """Record a change for a wedding and apply ``patch`` to its live entries.

        Returns the number of entries ``patch`` changed. Entries it leaves
        alone (``None``) are still marked as synced with the change. Entries
        already stale from an earlier change are skipped. All rewritten
        entries keep their original ``computed_at`` and expiry.
        """
        patched = 0
        try:
            previous = self.backend.changed_at(wedding_id)
            now = time.time()
            self.backend.mark_changed(wedding_id, now)
            for key in self.backend.keys_for(wedding_id):
                entry = self._decode(self.backend.get(key))
                if entry is None or not self._fresh(entry) or not self._current(entry, previous):
                    continue
                updated = patch(entry)
                if updated is not None:
                    patched += 1
                remaining = int(self.ttl_seconds - (now - entry.computed_at))
                if remaining <= 0:
                    continue
                current = updated if updated is not None else entry
                synced = current.model_copy(update={"synced_at": now})
                self.backend.set(wedding_id, key, synced.model_dump_json(), remaining)
        except CacheUnavailable:
            self.errors += 1
            raise
        return patched

    def stats(self) -> dict:
        total = self.hits + self.misses
        try:
            size = self.backend.size()
        except CacheUnavailable:
            size = None
        return {
            "backend": type(self.backend).__name__,
            "size": size,
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hit_rate": round(self.hits / total * 100, 1) if total > 0 else 0.0,
        }

    def clear(self) -> None:
        self.backend.clear()
        self.hits = 0
        self.misses = 0
        self.errors = 0


_cache: RecommendationCache | None = None


def build_cache(config: RecommendationConfig = DEFAULT_CONFIG) -> RecommendationCache:
    if config.redis_url:
        backend = RedisCacheBackend.from_url(
            config.redis_url, index_ttl=max(86400, config.cache_ttl_seconds * 2)
        )
    else:
        backend = MemoryCacheBackend()
    return RecommendationCache(backend, ttl_seconds=config.cache_ttl_seconds)


def get_cache() -> RecommendationCache:
    global _cache
    if _cache is None:
        _cache = build_cache()
    return _cache


def set_cache(cache: RecommendationCache) -> None:
    global _cache
    _cache = cache


def get_cache_stats() -> dict:
    return get_cache().stats()


def clear_cache() -> None:
    get_cache().clear()
