"""
cache/preferences.py -- Per-user preferences kept in the cache namespace.

The academic year a user is working in is a UI preference with no relational
home; it lives at user:<subject_id>:academic_year for a year and is reset by
clearing the user:<subject_id>:* family.
"""

from __future__ import annotations

from cache.store import CacheManager
from core.errors import CacheMiss

_DEFAULT_ACADEMIC_YEAR_TTL = 365 * 24 * 60 * 60


class PreferenceService:
    def __init__(self, cache: CacheManager, academic_year_ttl: int = _DEFAULT_ACADEMIC_YEAR_TTL) -> None:
        self._cache = cache
        self._academic_year_ttl = academic_year_ttl

    @staticmethod
    def _academic_year_key(subject_id: str) -> str:
        return f"user:{subject_id}:academic_year"

    def get_academic_year(self, subject_id: str) -> str:
        """Return the saved academic year, or "" when none has been saved."""
        try:
            return self._cache.get(self._academic_year_key(subject_id), str)
        except CacheMiss:
            return ""

    def set_academic_year(self, subject_id: str, academic_year: str) -> None:
        if not academic_year:
            raise ValueError("academic_year must not be empty")
        self._cache.set(self._academic_year_key(subject_id), academic_year, ttl=self._academic_year_ttl)

    def reset(self, subject_id: str) -> int:
        """Drop every preference stored for subject_id. Returns the number removed."""
        return self._cache.delete_pattern(f"user:{subject_id}:*")
