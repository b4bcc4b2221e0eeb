"""Unit tests for auth/users.py -- UserService read-through profile cache."""

from __future__ import annotations

import json

from auth.users import UserService, profile_cache_key


def test_profile_is_read_through_and_cached(users: UserService, fake_redis) -> None:
    profile = users.get_profile("123456789")

    assert profile.first_name == "Dana"
    assert profile.email == "dana@example.com"
    assert fake_redis.get("tzlev:cache:user:123456789") is not None
    assert fake_redis.ttl_of("tzlev:cache:user:123456789") == 300


def test_second_read_is_served_from_cache(users: UserService, user_store) -> None:
    users.get_profile("123456789")
    user_store.close()
    # The engine is disposed, but a cached profile needs no database.
    assert users.get_profile("123456789").last_name == "Levi"


def test_cached_profile_holds_no_password(users: UserService, fake_redis) -> None:
    users.get_profile("123456789")
    payload = json.loads(fake_redis.get("tzlev:cache:user:123456789"))
    assert "hashed_password" not in payload
    assert "$2b$" not in json.dumps(payload)


def test_unknown_user_is_none_and_not_cached(users: UserService, fake_redis) -> None:
    assert users.get_profile("000000000") is None
    assert fake_redis.get("tzlev:cache:user:000000000") is None


def test_update_invalidates_cached_profile(users: UserService) -> None:
    users.get_profile("123456789")
    user = users.find_by_subject_id("123456789")
    user.first_name = "Noa"

    assert users.update(user) is True
    assert users.get_profile("123456789").first_name == "Noa"


def test_undecodable_cache_entry_falls_back_to_store(users: UserService, fake_redis) -> None:
    fake_redis.set("tzlev:cache:user:123456789", b'{"unexpected": true}')

    profile = users.get_profile("123456789")

    assert profile.first_name == "Dana"
    assert json.loads(fake_redis.get("tzlev:cache:user:123456789"))["subject_id"] == "123456789"


def test_profile_cache_key() -> None:
    assert profile_cache_key("42") == "user:42"
