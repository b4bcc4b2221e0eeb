"""
auth/users.py -- Cached profile lookups in front of UserStore.

Profiles are cached at user:<subject_id> for a few minutes and dropped on
every update, so a read after a write always reaches the repository.
Password hashes are never cached: credential checks go straight to the store.
"""

from __future__ import annotations

import logging

from auth.models import User, UserProfile
from auth.store import UserStore
from cache.store import CacheManager
from core.errors import CacheMiss, DeserializationError

logger = logging.getLogger("tzlev.auth.users")

_DEFAULT_PROFILE_TTL = 5 * 60


def _to_profile(user: User) -> UserProfile:
    return UserProfile(
        subject_id=user.subject_id,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        avatar=user.avatar,
        role=user.role,
        is_admin=user.is_admin,
        confirmed_at=user.confirmed_at,
    )


def profile_cache_key(subject_id: str) -> str:
    return f"user:{subject_id}"


class UserService:
    def __init__(self, store: UserStore, cache: CacheManager, profile_ttl: int = _DEFAULT_PROFILE_TTL) -> None:
        self.store = store
        self._cache = cache
        self._profile_ttl = profile_ttl

    def get_profile(self, subject_id: str) -> UserProfile | None:
        """Return the profile for subject_id, reading through the cache.

        A cache entry that no longer decodes (written by an older release) is
        treated like a miss and overwritten.
        """
        key = profile_cache_key(subject_id)
        try:
            return self._cache.get(key, UserProfile)
        except CacheMiss:
            pass
        except DeserializationError:
            logger.warning("Discarding undecodable cached profile for %s", subject_id)

        user = self.store.find_by_subject_id(subject_id)
        if user is None:
            return None
        profile = _to_profile(user)
        self._cache.set(key, profile, ttl=self._profile_ttl)
        return profile

    def find_by_subject_id(self, subject_id: str) -> User | None:
        return self.store.find_by_subject_id(subject_id)

    def find_by_email(self, email: str) -> User | None:
        return self.store.find_by_email(email)

    def update(self, user: User) -> bool:
        """Persist user, then invalidate its cached profile."""
        updated = self.store.update(user)
        self._cache.delete(profile_cache_key(user.subject_id))
        return updated
