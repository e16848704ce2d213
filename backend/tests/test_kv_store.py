"""Tests for the key-value store implementations."""

import asyncio

import pytest

from gatekeeper.core.errors import StoreUnavailableError
from gatekeeper.core.kv_store import (
    MemoryStore,
    RedisStore,
    StorePurpose,
    close_stores,
    get_store,
    purge_memory_stores,
    set_store,
)
from tests.helpers import FakeClock


class TestMemoryStore:
    """Tests for the in-process store."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        store = MemoryStore()

        await store.set("k", "v", 60)
        assert await store.get("k") == "v"

        await store.delete("k", "missing")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_values_expire(self):
        clock = FakeClock()
        store = MemoryStore(clock=clock)

        await store.set("k", "v", 10)
        clock.advance(9)
        assert await store.get("k") == "v"
        clock.advance(1)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_incr_window_counts_and_reports_ttl(self):
        clock = FakeClock()
        store = MemoryStore(clock=clock)

        assert await store.incr_window("w", 60) == (1, 60)
        clock.advance(20)
        assert await store.incr_window("w", 60) == (2, 40)

    @pytest.mark.asyncio
    async def test_incr_window_starts_fresh_after_expiry(self):
        """The window does not slide: it restarts only once it has expired."""
        clock = FakeClock()
        store = MemoryStore(clock=clock)

        for _ in range(3):
            await store.incr_window("w", 60)
        clock.advance(60)

        assert await store.incr_window("w", 60) == (1, 60)

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self):
        store = MemoryStore()

        results = await asyncio.gather(*(store.incr_window("w", 60) for _ in range(50)))

        counts = sorted(count for count, _ in results)
        assert counts == list(range(1, 51))

    @pytest.mark.asyncio
    async def test_purge_expired(self):
        clock = FakeClock()
        store = MemoryStore(clock=clock)
        await store.set("short", "1", 5)
        await store.set("long", "1", 500)

        clock.advance(10)

        assert await store.purge_expired() == 1
        assert await store.get("long") == "1"


class TestRedisStore:
    """Tests for the Redis store that need no running server."""

    @pytest.mark.asyncio
    async def test_unreachable_server_raises_store_unavailable(self):
        """Connection failures surface as StoreUnavailableError."""
        store = RedisStore("redis://127.0.0.1:1/0", socket_timeout=0.5)
        try:
            with pytest.raises(StoreUnavailableError):
                await store.get("anything")
            with pytest.raises(StoreUnavailableError):
                await store.incr_window("anything", 60)
        finally:
            await store.close()


class TestSharedStores:
    """Tests for the per-purpose store registry."""

    def test_memory_store_without_redis_url(self):
        assert isinstance(get_store(StorePurpose.BLACKLIST), MemoryStore)

    def test_one_store_per_purpose(self):
        blacklist = get_store(StorePurpose.BLACKLIST)

        assert get_store(StorePurpose.BLACKLIST) is blacklist
        assert get_store(StorePurpose.RATE_LIMIT) is not blacklist

    @pytest.mark.asyncio
    async def test_purge_memory_stores(self):
        clock = FakeClock()
        set_store(StorePurpose.RATE_LIMIT, MemoryStore(clock=clock))
        await get_store(StorePurpose.RATE_LIMIT).set("k", "1", 5)
        clock.advance(6)

        assert await purge_memory_stores() == 1

    @pytest.mark.asyncio
    async def test_close_stores_forgets_instances(self):
        first = get_store(StorePurpose.PERMISSION_CACHE)

        await close_stores()

        assert get_store(StorePurpose.PERMISSION_CACHE) is not first
