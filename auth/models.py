"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only own the shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """Credential record owned by the user repository.

    subject_id is the national-ID-style primary key shared by the password and
    OAuth login paths. hashed_password is None for accounts that only ever
    sign in through Google. confirmed_at and avatar are backfilled on the
    first successful OAuth login.
    """

    subject_id: str
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    avatar: str | None = None
    role: str | None = None
    is_admin: bool = False
    hashed_password: str | None = None
    confirmed_at: datetime | None = None
    inserted_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class UserProfile:
    """The cacheable, password-free view of a User."""

    subject_id: str
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    avatar: str | None = None
    role: str | None = None
    is_admin: bool = False
    confirmed_at: datetime | None = None


@dataclass
class SessionRecord:
    """Server-side session payload.

    The session identifier is the store key and is deliberately not part of
    the record. name and email are display copies taken at login; anything
    authoritative is re-read from the user repository.
    """

    subject_id: str
    email: str | None
    name: str
    created_at: datetime | None = None


@dataclass
class Identity:
    """What the auth gate attaches to a request once the session checks out."""

    session_id: str
    subject_id: str
    email: str | None
    name: str


@dataclass
class OAuthIdentity:
    """Profile returned by the identity provider after a code exchange."""

    subject: str  # provider's stable user ID
    email: str
    name: str = ""
    picture: str | None = None
    email_verified: bool | None = None
