"""Key-value store backing the blacklist, rate-limit counters and permission cache.

Two implementations share one interface:

- ``RedisStore`` for multi-worker deployments (one logical database per purpose)
- ``MemoryStore`` for single-instance deployments and tests

Both raise ``StoreUnavailableError`` when the backend cannot be reached so
callers can apply their configured ``FailurePolicy``.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from gatekeeper.core.config import settings
from gatekeeper.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class StorePurpose(str, Enum):
    BLACKLIST = "blacklist"
    RATE_LIMIT = "rate_limit"
    PERMISSION_CACHE = "permission_cache"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, *keys: str) -> None: ...

    async def incr_window(self, key: str, window_seconds: int) -> tuple[int, int]: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (RedisError, OSError) as e:
        raise StoreUnavailableError(f"Store {operation} failed: {e}") from e


class RedisStore:
    """Redis-backed store using redis.asyncio."""

    # INCR + EXPIRE-on-first-hit + TTL in one round trip. A counter that lost
    # its expiry (e.g. EXPIRE never ran) is given a fresh window.
    _FIXED_WINDOW_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
local window = tonumber(ARGV[1])
if count == 1 then
  redis.call('EXPIRE', KEYS[1], window)
end
local ttl = redis.call('TTL', KEYS[1])
if ttl < 0 then
  redis.call('EXPIRE', KEYS[1], window)
  ttl = window
end
return {count, ttl}
"""

    def __init__(self, redis_url: str, *, db: int = 0, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.client = aioredis.from_url(
            redis_url,
            db=db,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._fixed_window = self.client.register_script(self._FIXED_WINDOW_SCRIPT)

    async def get(self, key: str) -> str | None:
        with _store_errors("get"):
            return await self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with _store_errors("set"):
            await self.client.set(key, value, ex=max(1, int(ttl_seconds)))

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        with _store_errors("delete"):
            await self.client.delete(*keys)

    async def incr_window(self, key: str, window_seconds: int) -> tuple[int, int]:
        with _store_errors("incr_window"):
            count, ttl = await self._fixed_window(keys=[key], args=[int(window_seconds)])
        return int(count), int(ttl)

    async def ping(self) -> bool:
        with _store_errors("ping"):
            return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()


class MemoryStore:
    """In-process store with per-key expiry.

    The clock is injectable so tests can move time forward without sleeping.
    Expired keys are dropped lazily on access and by ``purge_expired``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str, now: float) -> tuple[str, float] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] <= now:
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._live(key, self._clock())
            return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._lock:
            self._data[key] = (value, self._clock() + max(1, int(ttl_seconds)))

    async def delete(self, *keys: str) -> None:
        async with self._lock:
            for key in keys:
                self._data.pop(key, None)

    async def incr_window(self, key: str, window_seconds: int) -> tuple[int, int]:
        async with self._lock:
            now = self._clock()
            entry = self._live(key, now)
            if entry is None:
                expires_at = now + int(window_seconds)
                count = 1
            else:
                count = int(entry[0]) + 1
                expires_at = entry[1]
            self._data[key] = (str(count), expires_at)
            return count, max(1, int(round(expires_at - now)))

    async def ping(self) -> bool:
        return True

    async def purge_expired(self) -> int:
        """Remove expired keys. Returns count removed."""
        async with self._lock:
            now = self._clock()
            expired = [key for key, (_, expires_at) in self._data.items() if expires_at <= now]
            for key in expired:
                del self._data[key]
            return len(expired)

    async def close(self) -> None:
        async with self._lock:
            self._data.clear()


_stores: dict[StorePurpose, KeyValueStore] = {}
_stores_lock = threading.Lock()


def _redis_db_for(purpose: StorePurpose) -> int:
    return {
        StorePurpose.BLACKLIST: settings.redis_db_blacklist,
        StorePurpose.RATE_LIMIT: settings.redis_db_rate_limit,
        StorePurpose.PERMISSION_CACHE: settings.redis_db_permission_cache,
    }[purpose]


def create_store(purpose: StorePurpose) -> KeyValueStore:
    """Build a store for a purpose from configuration."""
    if settings.redis_url:
        return RedisStore(
            settings.redis_url,
            db=_redis_db_for(purpose),
            socket_timeout=settings.redis_socket_timeout,
        )
    return MemoryStore()


def get_store(purpose: StorePurpose) -> KeyValueStore:
    """Get the shared store for a purpose (thread-safe)."""
    store = _stores.get(purpose)
    if store is None:
        with _stores_lock:
            store = _stores.get(purpose)
            if store is None:
                store = create_store(purpose)
                _stores[purpose] = store
    return store


def set_store(purpose: StorePurpose, store: KeyValueStore) -> None:
    """Replace the shared store for a purpose."""
    with _stores_lock:
        _stores[purpose] = store


async def purge_memory_stores() -> int:
    """Sweep expired keys from every in-process store. Returns count removed."""
    removed = 0
    for store in list(_stores.values()):
        if isinstance(store, MemoryStore):
            removed += await store.purge_expired()
    return removed


async def close_stores() -> None:
    """Close and forget every shared store."""
    with _stores_lock:
        stores = list(_stores.values())
        _stores.clear()
    for store in stores:
        try:
            await store.close()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing key-value store: {e}")
