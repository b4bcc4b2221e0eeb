"""
auth/sessions.py -- Server-side session records in the key-value store.

Sessions live under their own namespace (default "tzlev:session:"), separate
from the cache namespace, and all share one fixed TTL of 24 hours. Expiry is
passive: Redis reaps the key and a later get() reports SessionNotFound. No
cleanup task runs in this process.

Serialization contract: a flat JSON object
  {"subject_id": str, "email": str | null, "name": str, "created_at": ISO-8601}
Anything else in the slot -- truncated bytes, a different encoding, a record
from an incompatible release -- is CorruptRecord, which callers must treat as
an authentication failure.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone

from auth.models import SessionRecord
from core.errors import CorruptRecord, SessionNotFound
from core.kv import KeyValueStore

logger = logging.getLogger("tzlev.auth.sessions")

SESSION_TTL_SECONDS = 24 * 60 * 60
_DEFAULT_PREFIX = "tzlev:session:"


def _record_to_bytes(record: SessionRecord) -> bytes:
    created_at = record.created_at.isoformat() if record.created_at else None
    return json.dumps(
        {
            "subject_id": record.subject_id,
            "email": record.email,
            "name": record.name,
            "created_at": created_at,
        }
    ).encode("utf-8")


def _bytes_to_record(data: bytes) -> SessionRecord:
    """Parse stored bytes. Raises ValueError, KeyError or TypeError on anything malformed."""
    payload = json.loads(data.decode("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"session payload is {type(payload).__name__}, not an object")
    subject_id = payload["subject_id"]
    name = payload["name"]
    email = payload.get("email")
    if not isinstance(subject_id, str) or not subject_id or not isinstance(name, str):
        raise TypeError("session payload has invalid subject_id or name")
    if email is not None and not isinstance(email, str):
        raise TypeError("session payload has invalid email")
    created_at = payload.get("created_at")
    return SessionRecord(
        subject_id=subject_id,
        email=email,
        name=name,
        created_at=datetime.fromisoformat(created_at) if created_at else None,
    )


class SessionStore:
    """Create / get / delete / refresh session records by opaque identifier.

    Usage:
        sessions = SessionStore(kv)
        sessions.create(sid, SessionRecord(subject_id="123456789", email=..., name=...))
        record = sessions.get(sid)      # SessionNotFound once expired
        sessions.refresh(sid)           # TTL back to 24h, payload untouched
    """

    def __init__(self, kv: KeyValueStore, prefix: str = _DEFAULT_PREFIX, ttl: int = SESSION_TTL_SECONDS) -> None:
        self._kv = kv
        self.prefix = prefix
        self.ttl = ttl

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    def create(self, session_id: str, record: SessionRecord) -> SessionRecord:
        """Stamp created_at and write the record, replacing whatever was there.

        There is no "already exists" check: a re-login always wins.
        Returns the stamped record.
        """
        stamped = replace(record, created_at=datetime.now(timezone.utc))
        self._kv.set(self._key(session_id), _record_to_bytes(stamped), ttl=self.ttl)
        return stamped

    def get(self, session_id: str) -> SessionRecord:
        data = self._kv.get(self._key(session_id))
        if data is None:
            raise SessionNotFound("session not found or expired")
        try:
            return _bytes_to_record(data)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Corrupt session record rejected: %s", exc)
            raise CorruptRecord(f"unreadable session record: {exc}") from exc

    def delete(self, session_id: str) -> None:
        """Remove the record. Deleting an absent session is not an error."""
        self._kv.delete(self._key(session_id))

    def refresh(self, session_id: str) -> bool:
        """Reset the TTL to the full duration without touching the payload.

        Returns False when the record had already expired.
        """
        return self._kv.expire(self._key(session_id), self.ttl)
