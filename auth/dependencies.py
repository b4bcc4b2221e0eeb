"""
auth/dependencies.py -- Session transport helpers and the per-request auth gate.

Transport: the opaque session identifier travels in Starlette's
SessionMiddleware cookie (itsdangerous-signed, httpOnly). The cookie holds
only the identifier ("sid") and the in-flight OAuth state -- never identity
data. Because the cookie is signed, a sid can only have been issued by us.

Gate: authorize_session() is the only place session validity is enforced.
  1. no identifier                     -> Unauthenticated
  2. SessionNotFound / CorruptRecord   -> Unauthenticated
  3. refresh TTL (best effort)         -> failure reported, not raised
  4. return the Identity
StoreError from the lookup itself propagates: a store outage is a 503, not a
logout.

require_session() wraps the gate as a FastAPI dependency, attaches the
Identity to request.state, and turns Unauthenticated into HTTP 401.
Handlers behind it trust the identity unconditionally.

Layer rule: auth/dependencies.py may import from fastapi because it is part of
the FastAPI dependency injection system. Nothing else in auth/ does.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from fastapi import HTTPException, Request

from auth.models import Identity
from auth.sessions import SessionStore
from core.errors import CorruptRecord, SessionNotFound, StoreError, Unauthenticated

logger = logging.getLogger("tzlev.auth.gate")

SESSION_ID_KEY = "sid"
_SESSION_ID_BYTES = 32


# ---------------------------------------------------------------------------
# Transport session identifier
# ---------------------------------------------------------------------------


def get_session_id(request: Request) -> str | None:
    """Return the session identifier from the signed cookie, or None."""
    sid = request.session.get(SESSION_ID_KEY)
    return sid if isinstance(sid, str) and sid else None


def new_session_id() -> str:
    """Mint a fresh opaque identifier (256 bits, URL-safe).

    Every successful login gets a new one, so a pre-login identifier is never
    promoted to an authenticated one (session fixation).
    """
    return secrets.token_urlsafe(_SESSION_ID_BYTES)


def bind_session_id(request: Request, session_id: str) -> None:
    """Write session_id into the client's signed cookie."""
    request.session[SESSION_ID_KEY] = session_id


def clear_transport_session(request: Request) -> None:
    request.session.clear()


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


@dataclass
class GateResult:
    """Outcome of a successful gate check.

    refresh_error is set when the TTL could not be extended. The session is
    still valid until its current TTL runs out, so callers may ignore it.
    """

    identity: Identity
    refresh_error: StoreError | None = None
    refreshed: bool = True


def authorize_session(sessions: SessionStore, session_id: str | None) -> GateResult:
    if not session_id:
        raise Unauthenticated("no session identifier")
    try:
        record = sessions.get(session_id)
    except (SessionNotFound, CorruptRecord) as exc:
        raise Unauthenticated(exc.message) from exc

    identity = Identity(
        session_id=session_id,
        subject_id=record.subject_id,
        email=record.email,
        name=record.name,
    )
    try:
        refreshed = sessions.refresh(session_id)
    except StoreError as exc:
        return GateResult(identity=identity, refresh_error=exc, refreshed=False)
    return GateResult(identity=identity, refreshed=refreshed)


def require_session(request: Request) -> Identity:
    """Require a valid session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(require_session)): ...
    """
    sessions: SessionStore = request.app.state.sessions
    try:
        result = authorize_session(sessions, get_session_id(request))
    except Unauthenticated as exc:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
        raise HTTPException(
            status_code=401,
            detail={"code": Unauthenticated.error_code, "message": Unauthenticated.public_message},
        ) from exc

    if result.refresh_error is not None:
        logger.warning("Failed to refresh session for %s: %s", result.identity.subject_id, result.refresh_error)
    request.state.identity = result.identity
    return result.identity
