"""Unit tests for cache/store.py -- CacheManager.

Covers:
- namespacing under the cache prefix
- CacheMiss on a never-set key, StoreError on an outage (not a miss)
- DeserializationError for bytes in a different encoding or wrong shape
- SerializationError for values with no JSON encoding
- delete_pattern() removes exactly the matching family; empty match is a no-op
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from cache.store import CacheManager
from core.errors import CacheMiss, DeserializationError, SerializationError, StoreError


@dataclass
class Profile:
    subject_id: str
    name: str
    confirmed_at: datetime | None = None


def test_values_are_namespaced(cache: CacheManager, fake_redis) -> None:
    cache.set("user:1", {"a": 1}, ttl=60)
    assert fake_redis.get("tzlev:cache:user:1") == b'{"a":1}'
    assert fake_redis.get("user:1") is None


def test_dataclass_round_trip(cache: CacheManager) -> None:
    profile = Profile("1", "Dana", datetime(2024, 9, 1, 8, 0, tzinfo=timezone.utc))
    cache.set("user:1", profile, ttl=300)
    assert cache.get("user:1", Profile) == profile


def test_miss_raises_cache_miss(cache: CacheManager) -> None:
    with pytest.raises(CacheMiss) as info:
        cache.get("never-set", dict)
    assert info.value.key == "never-set"


def test_expired_entry_is_a_miss(cache: CacheManager, fake_redis) -> None:
    cache.set("short", "v", ttl=5)
    fake_redis.advance(5)
    with pytest.raises(CacheMiss):
        cache.get("short", str)


def test_outage_is_store_error_not_miss(cache: CacheManager, fake_redis) -> None:
    fake_redis.fail_ops.add("get")
    with pytest.raises(StoreError):
        cache.get("anything", dict)


def test_foreign_encoding_raises_deserialization_error(cache: CacheManager, fake_redis) -> None:
    fake_redis.set("tzlev:cache:legacy", b"\x80\x04\x95pickled")
    with pytest.raises(DeserializationError):
        cache.get("legacy", dict)


def test_wrong_shape_raises_deserialization_error(cache: CacheManager) -> None:
    cache.set("n", "abc", ttl=60)
    with pytest.raises(DeserializationError):
        cache.get("n", int)


def test_unencodable_value_raises_serialization_error(cache: CacheManager, fake_redis) -> None:
    with pytest.raises(SerializationError):
        cache.set("bad", object(), ttl=60)
    assert fake_redis.get("tzlev:cache:bad") is None


def test_delete_is_idempotent(cache: CacheManager) -> None:
    cache.set("k", 1, ttl=60)
    cache.delete("k")
    cache.delete("k")
    assert cache.exists("k") is False


def test_exists(cache: CacheManager) -> None:
    assert cache.exists("k") is False
    cache.set("k", [1, 2], ttl=60)
    assert cache.exists("k") is True


def test_delete_pattern_removes_exactly_the_family(cache: CacheManager) -> None:
    cache.set("user:42:academic_year", "2024-2025", ttl=60)
    cache.set("user:42:profile", {"name": "Dana"}, ttl=60)
    cache.set("user:43:profile", {"name": "Noa"}, ttl=60)

    assert cache.delete_pattern("user:42:*") == 2

    assert cache.exists("user:42:academic_year") is False
    assert cache.exists("user:42:profile") is False
    assert cache.get("user:43:profile", dict) == {"name": "Noa"}


def test_delete_pattern_empty_match_is_noop(cache: CacheManager, fake_redis) -> None:
    assert cache.delete_pattern("user:99:*") == 0
    assert not any(op == "delete" for op, _ in fake_redis.commands)


def test_delete_pattern_stays_inside_namespace(cache: CacheManager, fake_redis) -> None:
    fake_redis.set("tzlev:session:abc", b"{}")
    cache.set("user:1", 1, ttl=60)
    cache.delete_pattern("*")
    assert fake_redis.get("tzlev:session:abc") == b"{}"
