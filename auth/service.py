"""
auth/service.py -- Login, logout and current-user flows.

AuthService owns the lifecycle of sessions (when one is created or destroyed)
but not how they are stored; that is SessionStore's job. It is also the one
place failure reasons are collapsed: every rejected password login raises the
same AuthFailed whatever the cause, so route code cannot leak whether a
subject exists.

Security notes:
  [C1] Password login always runs one bcrypt verification, against the dummy
       hash when the subject is unknown, so response time does not reveal
       account existence.
  Google login never provisions accounts. The identity's email must match a
  pre-existing record, otherwise NotAuthorized.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from auth.models import OAuthIdentity, SessionRecord, User, UserProfile
from auth.oauth import GoogleOAuthClient
from auth.passwords import burn_verify, verify_password
from auth.sessions import SessionStore
from auth.users import UserService
from core.errors import AuthFailed, CorruptRecord, NotAuthorized, SessionNotFound, StoreError, Unauthenticated

logger = logging.getLogger("tzlev.auth")


def _display_name(user: User) -> str:
    return f"{user.first_name} {user.last_name}".strip()


class AuthService:
    """Compose the password verifier, OAuth client, session store and user lookup.

    oauth may be None when Google is not configured; the OAuth methods then
    raise NotAuthorized.
    """

    def __init__(self, users: UserService, sessions: SessionStore, oauth: GoogleOAuthClient | None = None) -> None:
        self.users = users
        self.sessions = sessions
        self.oauth = oauth

    def _open_session(self, session_id: str, user: User) -> SessionRecord:
        return self.sessions.create(
            session_id,
            SessionRecord(subject_id=user.subject_id, email=user.email, name=_display_name(user)),
        )

    # ------------------------------------------------------------------
    # Password
    # ------------------------------------------------------------------

    def login_with_password(self, session_id: str, subject_id: str, password: str) -> SessionRecord:
        """Verify subject_id/password and open a session under session_id.

        Raises AuthFailed for an unknown subject, an account without a local
        password, or a wrong password. No session is written on failure.
        """
        user = self.users.find_by_subject_id(subject_id)
        if user is None or not user.hashed_password:
            burn_verify(password)
            logger.warning("Login failed for %s: unknown subject", subject_id)
            raise AuthFailed(f"unknown subject {subject_id}")
        if not verify_password(password, user.hashed_password):
            logger.warning("Login failed for %s: bad password", subject_id)
            raise AuthFailed(f"bad password for {subject_id}")

        record = self._open_session(session_id, user)
        logger.info("Password login for %s", subject_id)
        return record

    # ------------------------------------------------------------------
    # Google OAuth
    # ------------------------------------------------------------------

    def _require_oauth(self) -> GoogleOAuthClient:
        if self.oauth is None:
            raise NotAuthorized("Google login is not configured")
        return self.oauth

    def begin_oauth_login(self, state_store: MutableMapping[str, Any]) -> str:
        """Bind a fresh state to state_store and return the provider redirect URL."""
        return self._require_oauth().begin(state_store)

    def complete_oauth_login(
        self,
        session_id: str,
        state_store: MutableMapping[str, Any],
        state: str | None,
        code: str | None,
    ) -> SessionRecord:
        """Finish the callback leg and open a session.

        Order matters: the state check runs before any call to the provider,
        so a forged callback never reaches the token endpoint.

        Raises InvalidState, ExchangeError, IdentityFetchError or
        NotAuthorized; any of them leaves no session behind.
        """
        oauth = self._require_oauth()
        oauth.verify_state(state_store, state)
        token = oauth.exchange_code(code or "")
        identity = oauth.fetch_identity(token)

        user = self.users.find_by_email(identity.email)
        if user is None:
            logger.warning("Google login refused for %s: no matching account", identity.email)
            raise NotAuthorized(f"no account for {identity.email}")

        self._backfill_profile(user, identity)
        record = self._open_session(session_id, user)
        logger.info("Google login for %s", user.subject_id)
        return record

    def _backfill_profile(self, user: User, identity: OAuthIdentity) -> None:
        """Fill confirmed_at and avatar from the first Google login.

        Failure is logged and ignored: the login itself is already valid.
        """
        changed = False
        if user.confirmed_at is None:
            user.confirmed_at = datetime.now(timezone.utc)
            changed = True
        if not user.avatar and identity.picture:
            user.avatar = identity.picture
            changed = True
        if not changed:
            return
        try:
            self.users.update(user)
        except (SQLAlchemyError, StoreError) as exc:
            logger.error("Failed to backfill profile for %s: %s", user.subject_id, exc)

    # ------------------------------------------------------------------
    # Logout / current user
    # ------------------------------------------------------------------

    def logout(self, session_id: str | None) -> None:
        """Destroy the session. Succeeds whether or not one existed."""
        if not session_id:
            return
        self.sessions.delete(session_id)

    def current_user(self, session_id: str | None) -> UserProfile:
        """Resolve the session, then re-read the profile from the user repository.

        Raises Unauthenticated when the session or the user is gone.
        """
        if not session_id:
            raise Unauthenticated("no session identifier")
        try:
            record = self.sessions.get(session_id)
        except (SessionNotFound, CorruptRecord) as exc:
            raise Unauthenticated("session not found") from exc
        profile = self.users.get_profile(record.subject_id)
        if profile is None:
            raise Unauthenticated(f"user {record.subject_id} no longer exists")
        return profile
