"""
api/routes/v1/auth.py -- Login, Google OAuth, logout and current-user endpoints.

Routes:
  POST /api/v1/auth/login            -- password login; binds a new session id
  GET  /api/v1/auth/google/login     -- redirect to Google with a fresh state
  GET  /api/v1/auth/google/callback  -- state check, code exchange, session
  POST /api/v1/auth/logout           -- destroy session; always 200
  GET  /api/v1/auth/me               -- profile of the session's user (gate)

Security:
  [H2] POST /login is rate-limited per IP.
  [C1] AuthService.login_with_password() equalizes timing -- never inline
       the lookup and bcrypt check here.
  [M5] Cache-Control: no-store on login responses.
  Failure bodies come from the error's public message only, so they never say
  whether the subject exists.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, LoginRequest, MeResponse, MeUser, StatusResponse
from auth.dependencies import (
    bind_session_id,
    clear_transport_session,
    get_session_id,
    new_session_id,
    require_session,
)
from auth.models import Identity
from auth.service import AuthService
from core.config import get_settings
from core.errors import AuthFailed

logger = logging.getLogger("tzlev.api.auth")

# Auth policy:
# - POST /auth/login:            public -- login endpoint must be unauthenticated
# - GET  /auth/google/login:     public
# - GET  /auth/google/callback:  public -- guarded by the OAuth state check
# - POST /auth/logout:           public -- logging out needs no valid session
# - GET  /auth/me:               requires session (require_session)
router = APIRouter()


def _auth(request: Request) -> AuthService:
    return request.app.state.auth


# ---------------------------------------------------------------------------
# Password login
# ---------------------------------------------------------------------------


@limiter.limit(get_settings().login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=StatusResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with subject identifier and password; bind the session cookie."""
    auth = _auth(request)
    session_id = new_session_id()
    try:
        auth.login_with_password(session_id, body.zehut, body.password)
    except AuthFailed as exc:
        resp = JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=ErrorDetail(code=exc.error_code, message=exc.public_message)).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    previous = get_session_id(request)
    if previous:
        auth.logout(previous)
    bind_session_id(request, session_id)
    resp = JSONResponse(content=StatusResponse(message="Login successful").model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Google OAuth
# ---------------------------------------------------------------------------


@router.get("/auth/google/login")
def google_login(request: Request) -> RedirectResponse:
    """Start the authorization-code flow. The state is stored in the signed session cookie."""
    auth = _auth(request)
    if auth.oauth is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "oauth_disabled", "message": "Google login is not configured."},
        )
    url = auth.begin_oauth_login(request.session)
    return RedirectResponse(url, status_code=302)


@router.get("/auth/google/callback")
def google_callback(request: Request, state: str | None = None, code: str | None = None) -> RedirectResponse:
    """Finish the flow and redirect to the landing page.

    Every failure (bad state, exchange, userinfo, unknown account) propagates
    to the TzlevError handler and renders as a JSON error; no session is bound.
    """
    auth = _auth(request)
    if auth.oauth is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "oauth_disabled", "message": "Google login is not configured."},
        )
    session_id = new_session_id()
    auth.complete_oauth_login(session_id, request.session, state, code)

    previous = get_session_id(request)
    if previous:
        auth.logout(previous)
    bind_session_id(request, session_id)
    return RedirectResponse(get_settings().post_login_redirect, status_code=302)


# ---------------------------------------------------------------------------
# Logout / current user
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=StatusResponse)
def logout(request: Request) -> StatusResponse:
    """Destroy the server-side session and clear the cookie. Always succeeds."""
    _auth(request).logout(get_session_id(request))
    clear_transport_session(request)
    return StatusResponse(message="Logged out successfully")


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, identity: Identity = Depends(require_session)) -> MeResponse:
    """Return the current user's profile, re-read from the user repository."""
    profile = _auth(request).current_user(identity.session_id)
    return MeResponse(
        user=MeUser(
            zehut=profile.subject_id,
            first_name=profile.first_name,
            last_name=profile.last_name,
            email=profile.email,
            avatar=profile.avatar,
            role=profile.role,
            is_admin=profile.is_admin,
        )
    )
