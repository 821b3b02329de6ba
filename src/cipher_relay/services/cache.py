# src/cipher_relay/services/cache.py
"""Viewer-scoped history cache backed by Redis.

Two layers live here:

- ``ViewerCacheStore`` is a thin get/set/delete wrapper over ``redis.asyncio``
  that bounds every call with a timeout and reports any backend failure as
  ``CacheError``.
- ``CacheSynchronizer`` keeps each viewer's cached history warm on writes by
  prepending new items, and drops the coarser chat-list aggregates.

The durable store is authoritative. Anything read from here may be missing,
stale or corrupt, and callers must treat all of those as a miss.
"""

from __future__ import annotations

import asyncio
import json
import logging
import weakref
from typing import Any

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from cipher_relay.core.errors import CacheError
from cipher_relay.core.settings import settings

logger = logging.getLogger(__name__)


def viewer_cache_key(user_a: str, user_b: str, viewer_id: str) -> str:
    """Return the history key for a pair as seen by one of its participants.

    The pair is order independent; the viewer is not, so each side of a
    conversation gets its own entry holding its own decryptable copies.
    """
    first, second = sorted((user_a, user_b))
    return f"chat:{first}:{second}:viewer:{viewer_id}"


def chat_list_cache_key(viewer_id: str) -> str:
    """Return the conversations-list key for a viewer."""
    return f"chats:viewer:{viewer_id}"


def decode_cached_list(raw: str | None) -> list[Any] | None:
    """Decode a cached JSON array.

    Returns None for a missing entry.

    Raises:
        CacheError: If the payload is not a JSON array.
    """
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise CacheError("Cached payload is not valid JSON") from exc
    if not isinstance(value, list):
        raise CacheError(f"Cached payload is a {type(value).__name__}, expected a list")
    return value


def _item_id(item: Any) -> Any:
    return item.get("id") if isinstance(item, dict) else None


def create_redis_client(url: str | None = None) -> aioredis.Redis:
    """Build an asyncio Redis client that returns ``str`` values."""
    return aioredis.from_url(url or settings.redis_url, decode_responses=True)


class ViewerCacheStore:
    """Key-value cache with expiry; every failure surfaces as ``CacheError``."""

    def __init__(self, client: Any, timeout_seconds: float | None = None) -> None:
        self._client = client
        self._timeout = (
            timeout_seconds if timeout_seconds is not None else settings.cache_timeout_seconds
        )

    async def _call(self, operation: str, key: str, awaitable: Any) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except TimeoutError as exc:
            raise CacheError(f"Cache {operation} timed out for {key}") from exc
        except (RedisError, OSError) as exc:
            raise CacheError(f"Cache {operation} failed for {key}: {exc}") from exc

    async def get(self, key: str) -> str | None:
        value = await self._call("get", key, self._client.get(key))
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._call("set", key, self._client.set(key, value, ex=int(ttl_seconds)))

    async def delete(self, key: str) -> None:
        await self._call("delete", key, self._client.delete(key))

    async def close(self) -> None:
        """Release the underlying connection pool."""
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:  # pragma: no cover - shutdown path
            logger.warning("Error closing cache client: %s", exc)


class CacheSynchronizer:
    """Write-through maintenance of viewer history and chat-list caches."""

    def __init__(
        self,
        store: ViewerCacheStore,
        *,
        limit: int | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self.store = store
        self.limit = limit if limit is not None else settings.history_cache_limit
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.history_cache_ttl_seconds
        )
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def prepend_to_viewer_cache(self, key: str, item: dict[str, Any]) -> bool:
        """Insert `item` at the head of the cached history under `key`.

        A missing or undecodable entry is replaced by a fresh one-item list, and
        an older copy of the same message is dropped before the insert.
        The result is truncated to ``limit`` and written back with a fresh TTL.
        Updates to the same key from this process run one at a time; writers in
        other processes can still interleave and drop each other's item.

        Returns False if the cache could not be updated. Never raises on cache
        failure.
        """
        async with self._lock_for(key):
            try:
                raw = await self.store.get(key)
                try:
                    items = decode_cached_list(raw) or []
                except CacheError as exc:
                    logger.warning("Replacing corrupt cache entry %s: %s", key, exc)
                    items = []
                items = [cached for cached in items if _item_id(cached) != item["id"]]
                items.insert(0, item)
                del items[self.limit:]
                await self.store.set(key, json.dumps(items), self.ttl_seconds)
            except CacheError as exc:
                logger.warning("Cache update failed for %s: %s", key, exc)
                return False
        return True

    async def populate_viewer_cache(self, key: str, items: list[dict[str, Any]]) -> bool:
        """Fill `key` with a history loaded from the store after a miss.

        Runs under the same per-key lock as `prepend_to_viewer_cache`. If a
        message was prepended while the store was being queried, the entry now
        holds items the loaded list may lack, so those are kept at the head and
        the loaded items follow without duplicates.

        Returns False if the cache could not be updated. Never raises on cache
        failure.
        """
        async with self._lock_for(key):
            try:
                raw = await self.store.get(key)
                try:
                    current = decode_cached_list(raw) or []
                except CacheError as exc:
                    logger.warning("Replacing corrupt cache entry %s: %s", key, exc)
                    current = []
                seen = {_item_id(cached) for cached in current}
                merged = current + [item for item in items if _item_id(item) not in seen]
                await self.store.set(key, json.dumps(merged), self.ttl_seconds)
            except CacheError as exc:
                logger.warning("Cache populate failed for %s: %s", key, exc)
                return False
        return True

    async def invalidate_chat_lists(self, *viewer_ids: str) -> None:
        """Delete the chat-list aggregate of every given viewer, best effort."""
        keys = [chat_list_cache_key(viewer_id) for viewer_id in dict.fromkeys(viewer_ids)]
        results = await asyncio.gather(
            *(self.store.delete(key) for key in keys),
            return_exceptions=True,
        )
        for key, result in zip(keys, results):
            if isinstance(result, Exception):
                logger.warning("Failed to invalidate chat list %s: %s", key, result)
        logger.debug("Invalidated chat-list caches: %s", ", ".join(keys))
