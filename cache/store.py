"""
cache/store.py -- Namespaced cache over the shared key-value store.

Every key is prefixed with the cache namespace (default "tzlev:cache:") so
cache entries never collide with session records or other tenants of the
same Redis database. Values are JSON-encoded with pydantic so dataclasses,
pydantic models, and datetimes round-trip without per-type glue.

There is no in-process layer: every call is a round trip to the store, which
is the single source of cached truth shared by all server instances.

Usage:
    cache = CacheManager(kv)
    cache.set("user:123", profile, ttl=300)
    profile = cache.get("user:123", UserProfile)   # raises CacheMiss when absent
    cache.delete_pattern("user:123:*")
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_json

from core.errors import CacheMiss, DeserializationError, SerializationError
from core.kv import KeyValueStore

logger = logging.getLogger("tzlev.cache")

T = TypeVar("T")

_DEFAULT_PREFIX = "tzlev:cache:"


@lru_cache(maxsize=128)
def _adapter(dest_type: Any) -> TypeAdapter:
    return TypeAdapter(dest_type)


class CacheManager:
    def __init__(self, kv: KeyValueStore, prefix: str = _DEFAULT_PREFIX) -> None:
        self._kv = kv
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def set(self, key: str, value: Any, ttl: int) -> None:
        """Store value under key for ttl seconds, replacing any existing entry.

        Raises SerializationError if the value has no JSON encoding,
        StoreError if the write fails.
        """
        try:
            data = to_json(value)
        except PydanticSerializationError as exc:
            raise SerializationError(f"cannot encode value for {key}: {exc}") from exc
        self._kv.set(self._key(key), data, ttl=ttl)

    def get(self, key: str, dest_type: type[T]) -> T:
        """Return the cached value decoded as dest_type.

        Raises CacheMiss if absent, DeserializationError if the stored bytes
        do not validate as dest_type, StoreError on connectivity failure.
        """
        data = self._kv.get(self._key(key))
        if data is None:
            raise CacheMiss(key)
        try:
            return _adapter(dest_type).validate_json(data)
        except ValidationError as exc:
            logger.warning("Cached value for %s does not decode as %s", key, getattr(dest_type, "__name__", dest_type))
            raise DeserializationError(f"cannot decode {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        """Remove key. Deleting an absent key is not an error."""
        self._kv.delete(self._key(key))

    def delete_pattern(self, pattern: str) -> int:
        """Delete every entry whose logical key matches the glob pattern.

        Matching keys are removed in a single DEL. Returns the number of keys
        removed; an empty match is a no-op returning 0.
        """
        keys = self._kv.keys_matching(self._key(pattern))
        if not keys:
            return 0
        removed = self._kv.delete(*sorted(keys))
        logger.info("Invalidated %d cache entries matching %s", removed, pattern)
        return removed

    def exists(self, key: str) -> bool:
        return self._kv.exists(self._key(key))
