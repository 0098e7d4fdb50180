"""Keyed FIFO list stores backing the job queue.

Two interchangeable backends:
 1. RedisListStore - redis lists (RPUSH for FIFO order) plus a hash used as the
    id -> serialized job index. Persistent across restarts and shared between
    producer processes.
 2. MemoryListStore - process-local lists guarded by a lock. Used when redis is
    disabled, as an explicit fallback, and in tests.

Every single call is atomic with respect to the key it touches. ``move`` is the
one compound primitive: remove-one-occurrence from a source list and, only if
something was removed, append to a destination list. Redis runs it as a Lua
script so concurrent completers can never both succeed.
"""
from __future__ import annotations

import threading
from typing import Optional, Protocol

import redis

from filedrop.config import QUEUE_SETTINGS
from filedrop.errors import QueueStoreError
from filedrop.utils import get_logger

logger = get_logger(__name__)

_MOVE_SCRIPT = """
local removed = redis.call('LREM', KEYS[1], 1, ARGV[1])
if removed > 0 then
  redis.call('RPUSH', KEYS[2], ARGV[2])
end
return removed
"""


class ListStore(Protocol):
    backend: str

    def ping(self) -> bool: ...
    def append(self, key: str, value: str) -> int: ...
    def range(self, key: str, start: int, end: int) -> list[str]: ...
    def length(self, key: str) -> int: ...
    def remove(self, key: str, value: str) -> int: ...
    def move(self, src_key: str, value: str, dest_key: str, dest_value: str) -> bool: ...
    def index_set(self, key: str, field: str, value: str) -> None: ...
    def index_get(self, key: str, field: str) -> Optional[str]: ...
    def index_delete(self, key: str, field: str) -> None: ...
    def delete(self, *keys: str) -> None: ...


def _redis_slice(items: list[str], start: int, end: int) -> list[str]:
    """Python equivalent of LRANGE's inclusive, negative-aware bounds."""
    n = len(items)
    if start < 0:
        start = max(n + start, 0)
    if end < 0:
        end = n + end
    if start > end or start >= n:
        return []
    return items[start:end + 1]


class MemoryListStore:
    backend = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._lists: dict[str, list[str]] = {}
        self._hashes: dict[str, dict[str, str]] = {}

    def ping(self) -> bool:
        return True

    def append(self, key: str, value: str) -> int:
        with self._lock:
            items = self._lists.setdefault(key, [])
            items.append(value)
            return len(items)

    def range(self, key: str, start: int, end: int) -> list[str]:
        with self._lock:
            return list(_redis_slice(self._lists.get(key, []), start, end))

    def length(self, key: str) -> int:
        with self._lock:
            return len(self._lists.get(key, []))

    def remove(self, key: str, value: str) -> int:
        with self._lock:
            items = self._lists.get(key, [])
            try:
                items.remove(value)
            except ValueError:
                return 0
            return 1

    def move(self, src_key: str, value: str, dest_key: str, dest_value: str) -> bool:
        with self._lock:
            if self.remove(src_key, value) == 0:
                return False
            self.append(dest_key, dest_value)
            return True

    def index_set(self, key: str, field: str, value: str) -> None:
        with self._lock:
            self._hashes.setdefault(key, {})[field] = value

    def index_get(self, key: str, field: str) -> Optional[str]:
        with self._lock:
            return self._hashes.get(key, {}).get(field)

    def index_delete(self, key: str, field: str) -> None:
        with self._lock:
            self._hashes.get(key, {}).pop(field, None)

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._lists.pop(key, None)
                self._hashes.pop(key, None)


class RedisListStore:
    backend = "redis"

    def __init__(self, redis_url: str | None = None, *, health_check_timeout: float | None = None) -> None:
        self._redis_url = str(redis_url or QUEUE_SETTINGS["redis_url"])
        timeout = float(health_check_timeout or QUEUE_SETTINGS["redis_health_check_timeout"])  # type: ignore[arg-type]
        self._client = redis.from_url(self._redis_url, decode_responses=True, socket_connect_timeout=timeout)
        self._move_script = self._client.register_script(_MOVE_SCRIPT)

    @property
    def url(self) -> str:
        return self._redis_url

    def _fail(self, operation: str, exc: Exception) -> QueueStoreError:
        logger.error("Redis operation failed", operation=operation, error=str(exc))
        return QueueStoreError(f"Queue store unavailable during {operation}: {exc}")

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except (redis.RedisError, ConnectionError) as e:
            logger.warning("Redis ping failed", url=self._redis_url, error=str(e))
            return False

    def append(self, key: str, value: str) -> int:
        try:
            return int(self._client.rpush(key, value))
        except redis.RedisError as e:
            raise self._fail("append", e) from e

    def range(self, key: str, start: int, end: int) -> list[str]:
        try:
            return list(self._client.lrange(key, start, end))
        except redis.RedisError as e:
            raise self._fail("range", e) from e

    def length(self, key: str) -> int:
        try:
            return int(self._client.llen(key))
        except redis.RedisError as e:
            raise self._fail("length", e) from e

    def remove(self, key: str, value: str) -> int:
        try:
            return int(self._client.lrem(key, 1, value))
        except redis.RedisError as e:
            raise self._fail("remove", e) from e

    def move(self, src_key: str, value: str, dest_key: str, dest_value: str) -> bool:
        try:
            removed = self._move_script(keys=[src_key, dest_key], args=[value, dest_value])
        except redis.RedisError as e:
            raise self._fail("move", e) from e
        return int(removed) > 0

    def index_set(self, key: str, field: str, value: str) -> None:
        try:
            self._client.hset(key, field, value)
        except redis.RedisError as e:
            raise self._fail("index_set", e) from e

    def index_get(self, key: str, field: str) -> Optional[str]:
        try:
            return self._client.hget(key, field)
        except redis.RedisError as e:
            raise self._fail("index_get", e) from e

    def index_delete(self, key: str, field: str) -> None:
        try:
            self._client.hdel(key, field)
        except redis.RedisError as e:
            raise self._fail("index_delete", e) from e

    def delete(self, *keys: str) -> None:
        try:
            self._client.delete(*keys)
        except redis.RedisError as e:
            raise self._fail("delete", e) from e


def create_store() -> ListStore:
    """Create the configured store.

    Redis unreachable at boot is fatal unless the in-memory fallback is allowed.
    """
    if not bool(QUEUE_SETTINGS.get("use_redis", True)):
        logger.info("Using in-memory queue store")
        return MemoryListStore()

    store = RedisListStore()
    if store.ping():
        logger.info("Connected to Redis queue store", url=store.url)
        return store

    if bool(QUEUE_SETTINGS.get("allow_memory_fallback", False)):
        logger.warning("Redis unavailable, falling back to in-memory queue store", url=store.url)
        return MemoryListStore()
    raise QueueStoreError(f"Redis is not reachable at {store.url}")


__all__ = ["ListStore", "MemoryListStore", "RedisListStore", "create_store"]
