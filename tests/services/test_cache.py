"""Tests for the viewer cache store and synchronizer."""

import asyncio
import json

import pytest

from cipher_relay.core.errors import CacheError
from cipher_relay.services.cache import (
    CacheSynchronizer,
    ViewerCacheStore,
    chat_list_cache_key,
    decode_cached_list,
    viewer_cache_key,
)


def _item(n: int) -> dict:
    return {"id": f"m{n}", "senderId": "u1", "timestamp": f"2026-01-01T00:00:{n:02d}.000Z", "content": {}}


def test_viewer_cache_key_is_pair_order_independent():
    assert viewer_cache_key("u1", "u2", "u1") == viewer_cache_key("u2", "u1", "u1")
    assert viewer_cache_key("u2", "u1", "u1") == "chat:u1:u2:viewer:u1"


def test_viewer_cache_key_differs_per_viewer():
    assert viewer_cache_key("u1", "u2", "u1") != viewer_cache_key("u1", "u2", "u2")


def test_chat_list_cache_key():
    assert chat_list_cache_key("u9") == "chats:viewer:u9"


def test_decode_cached_list():
    assert decode_cached_list(None) is None
    assert decode_cached_list("[1, 2]") == [1, 2]
    with pytest.raises(CacheError):
        decode_cached_list("{not json")
    with pytest.raises(CacheError):
        decode_cached_list('{"a": 1}')


@pytest.mark.asyncio
async def test_store_wraps_backend_failures(fake_redis, cache_store):
    fake_redis.failing.add("get")
    with pytest.raises(CacheError):
        await cache_store.get("k")


@pytest.mark.asyncio
async def test_store_times_out():
    class SlowRedis:
        async def get(self, key):
            await asyncio.sleep(1)

    store = ViewerCacheStore(SlowRedis(), timeout_seconds=0.01)
    with pytest.raises(CacheError, match="timed out"):
        await store.get("k")


@pytest.mark.asyncio
async def test_prepend_creates_entry_with_ttl(fake_redis, cache_store):
    sync = CacheSynchronizer(cache_store, limit=5, ttl_seconds=30)

    assert await sync.prepend_to_viewer_cache("k", _item(1)) is True
    assert await sync.prepend_to_viewer_cache("k", _item(2)) is True

    assert [i["id"] for i in json.loads(fake_redis.data["k"])] == ["m2", "m1"]
    assert fake_redis.ttls["k"] == 30


@pytest.mark.asyncio
async def test_prepend_caps_length(fake_redis, cache_store):
    sync = CacheSynchronizer(cache_store, limit=3, ttl_seconds=30)

    for n in range(10):
        await sync.prepend_to_viewer_cache("k", _item(n))

    cached = json.loads(fake_redis.data["k"])
    assert len(cached) == 3
    assert [i["id"] for i in cached] == ["m9", "m8", "m7"]


@pytest.mark.asyncio
async def test_prepend_replaces_corrupt_entry(fake_redis, cache_store):
    fake_redis.data["k"] = "{{{ definitely not json"
    sync = CacheSynchronizer(cache_store, limit=3, ttl_seconds=30)

    assert await sync.prepend_to_viewer_cache("k", _item(1)) is True
    assert json.loads(fake_redis.data["k"]) == [_item(1)]


@pytest.mark.asyncio
async def test_prepend_swallows_backend_failure(fake_redis, cache_store):
    fake_redis.failing.add("set")
    sync = CacheSynchronizer(cache_store, limit=3, ttl_seconds=30)

    assert await sync.prepend_to_viewer_cache("k", _item(1)) is False
    assert "k" not in fake_redis.data


@pytest.mark.asyncio
async def test_concurrent_prepends_to_same_key_keep_every_item(fake_redis, cache_store):
    class YieldingRedis(type(fake_redis)):
        async def get(self, key):
            value = await super().get(key)
            await asyncio.sleep(0)
            return value

    redis = YieldingRedis()
    sync = CacheSynchronizer(ViewerCacheStore(redis, timeout_seconds=1.0), limit=100, ttl_seconds=30)

    await asyncio.gather(*(sync.prepend_to_viewer_cache("k", _item(n)) for n in range(20)))

    assert sorted(i["id"] for i in json.loads(redis.data["k"])) == sorted(f"m{n}" for n in range(20))


@pytest.mark.asyncio
async def test_invalidate_chat_lists_is_best_effort(fake_redis, cache_store):
    fake_redis.data["chats:viewer:u1"] = "[]"
    fake_redis.data["chats:viewer:u2"] = "[]"
    sync = CacheSynchronizer(cache_store)

    await sync.invalidate_chat_lists("u1", "u2", "u1")
    assert "chats:viewer:u1" not in fake_redis.data
    assert "chats:viewer:u2" not in fake_redis.data

    fake_redis.failing.add("delete")
    await sync.invalidate_chat_lists("u1", "u2")


@pytest.mark.asyncio
async def test_populate_fills_missing_entry(fake_redis, cache_store):
    sync = CacheSynchronizer(cache_store, limit=5, ttl_seconds=30)

    assert await sync.populate_viewer_cache("k", [_item(2), _item(1)]) is True

    assert [i["id"] for i in json.loads(fake_redis.data["k"])] == ["m2", "m1"]
    assert fake_redis.ttls["k"] == 30


@pytest.mark.asyncio
async def test_populate_keeps_items_prepended_meanwhile(fake_redis, cache_store):
    sync = CacheSynchronizer(cache_store, limit=5, ttl_seconds=30)
    await sync.prepend_to_viewer_cache("k", _item(3))

    await sync.populate_viewer_cache("k", [_item(3), _item(2), _item(1)])

    assert [i["id"] for i in json.loads(fake_redis.data["k"])] == ["m3", "m2", "m1"]


@pytest.mark.asyncio
async def test_populate_swallows_backend_failure(fake_redis, cache_store):
    fake_redis.failing.add("set")
    sync = CacheSynchronizer(cache_store)

    assert await sync.populate_viewer_cache("k", [_item(1)]) is False


@pytest.mark.asyncio
async def test_prepend_replaces_existing_copy_of_item(fake_redis, cache_store):
    sync = CacheSynchronizer(cache_store, limit=5, ttl_seconds=30)
    await sync.populate_viewer_cache("k", [_item(2), _item(1)])

    await sync.prepend_to_viewer_cache("k", _item(2))

    assert [i["id"] for i in json.loads(fake_redis.data["k"])] == ["m2", "m1"]
