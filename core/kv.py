"""
core/kv.py -- Key-value store client (Redis) shared by the cache and session layers.

One KeyValueStore is constructed in the API lifespan and handed to every
component that needs it. There is no module-level connection handle.

Contract:
  set / get / delete / expire / keys_matching / exists
  get() returns None for a miss. A miss is never an error.
  Every redis.exceptions.RedisError is re-raised as StoreError. No retries at
  this layer -- the store is an infrastructure dependency, not a resilience
  boundary.

Layer rule: core/ is the kernel. No imports from api/, auth/, or cache/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from redis import ConnectionPool, Redis
from redis.exceptions import RedisError

from core.config import Settings
from core.errors import StoreError

logger = logging.getLogger("tzlev.kv")

# SCAN batch size hint. Large enough that a namespace sweep is a handful of
# round trips, small enough not to block the server.
_SCAN_COUNT = 500


@contextmanager
def _store_errors(op: str, key: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        logger.error("Key-value store %s failed for %s: %s", op, key, exc)
        raise StoreError(f"{op} {key}: {exc}") from exc


class KeyValueStore:
    """Thin Redis wrapper with bytes values and second-resolution TTLs.

    Usage:
        kv = KeyValueStore.from_settings(get_settings())
        kv.set("tzlev:cache:user:1", b"{}", ttl=300)
        kv.get("tzlev:cache:user:1")   # b"{}" or None
        kv.close()
    """

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> KeyValueStore:
        pool = ConnectionPool(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password or None,
            db=settings.redis_db,
            max_connections=settings.redis_pool_size,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
        )
        return cls(Redis(connection_pool=pool))

    def ping(self) -> None:
        """Raise StoreError unless the server answers PING."""
        with _store_errors("ping", "-"):
            self._client.ping()

    def set(self, key: str, value: bytes, ttl: int | None = None) -> None:
        """Write value under key. ttl is in seconds; None means no expiry."""
        with _store_errors("set", key):
            self._client.set(key, value, ex=ttl)

    def get(self, key: str) -> bytes | None:
        with _store_errors("get", key):
            return self._client.get(key)

    def delete(self, *keys: str) -> int:
        """Delete keys in one command. Absent keys are ignored; returns the count removed."""
        if not keys:
            return 0
        with _store_errors("delete", keys[0]):
            return int(self._client.delete(*keys))

    def expire(self, key: str, ttl: int) -> bool:
        """Reset the TTL of key. Returns False when the key does not exist."""
        with _store_errors("expire", key):
            return bool(self._client.expire(key, ttl))

    def exists(self, key: str) -> bool:
        with _store_errors("exists", key):
            return int(self._client.exists(key)) > 0

    def keys_matching(self, pattern: str) -> set[str]:
        """Return every key matching a Redis glob pattern.

        SCAN rather than KEYS so a large keyspace does not block the server.
        SCAN may report a key more than once, hence the set.
        """
        with _store_errors("scan", pattern):
            return {
                k.decode("utf-8") if isinstance(k, bytes) else k
                for k in self._client.scan_iter(match=pattern, count=_SCAN_COUNT)
            }

    def close(self) -> None:
        self._client.close()
