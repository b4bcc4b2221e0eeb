"""
auth/oauth.py -- Google OAuth2 authorization-code client (authlib, requests integration).

Per login attempt:
  1. begin()          -- random state (256 bits, URL-safe) stored in the
                         caller's signed transport session; returns the
                         Google authorization URL embedding it.
  2. verify_state()   -- the callback's state must equal the stored one.
                         The stored value is popped, so it is single-use.
                         Checked before any network call to the provider.
  3. exchange_code()  -- code -> token. Any failure is ExchangeError. No
                         retry; a fresh authorization cycle is required.
  4. fetch_identity() -- token -> OAuthIdentity via the userinfo endpoint.

Security notes:
  The state value is the only OAuth protocol state this subsystem keeps.
  Access and refresh tokens are used once to read the profile and are then
  dropped -- sessions are keyed by our own subject identifier.

  [H1] An email the provider explicitly reports as unverified is rejected.
  An unverified address could belong to someone who merely typed it in.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Callable, MutableMapping
from typing import Any

import requests
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.requests_client import OAuth2Session

from auth.models import OAuthIdentity
from core.errors import ExchangeError, IdentityFetchError, InvalidState

logger = logging.getLogger("tzlev.auth.oauth")

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 -- URL, not a password
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPE = "openid email profile"

OAUTH_STATE_KEY = "oauth_state"
_STATE_BYTES = 32
_HTTP_TIMEOUT = 10


def new_state() -> str:
    """Return a fresh CSRF state token: 32 random bytes, URL-safe base64."""
    return secrets.token_urlsafe(_STATE_BYTES)


class GoogleOAuthClient:
    """Authorization-code flow against Google.

    session_factory builds the authlib OAuth2Session for each leg; tests pass
    a mock so no request leaves the process.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        session_factory: Callable[..., OAuth2Session] = OAuth2Session,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._session_factory = session_factory

    def _session(self, **kwargs: Any) -> OAuth2Session:
        return self._session_factory(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=GOOGLE_SCOPE,
            redirect_uri=self.redirect_uri,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Redirect leg
    # ------------------------------------------------------------------

    def authorization_url(self, state: str) -> str:
        url, _ = self._session().create_authorization_url(GOOGLE_AUTHORIZE_URL, state=state)
        return url

    def begin(self, state_store: MutableMapping[str, Any]) -> str:
        """Start a login attempt bound to state_store and return the redirect URL.

        A previous in-flight state in the same session is overwritten; only the
        latest attempt can complete.
        """
        state = new_state()
        state_store[OAUTH_STATE_KEY] = state
        return self.authorization_url(state)

    # ------------------------------------------------------------------
    # Callback leg
    # ------------------------------------------------------------------

    @staticmethod
    def verify_state(state_store: MutableMapping[str, Any], received: str | None) -> None:
        """Consume the stored state and compare it with the callback's.

        Raises InvalidState when either value is missing or they differ.
        """
        expected = state_store.pop(OAUTH_STATE_KEY, None)
        if not received or not expected:
            raise InvalidState("missing OAuth state")
        if not hmac.compare_digest(str(expected).encode("utf-8"), received.encode("utf-8")):
            raise InvalidState("OAuth state mismatch")

    def exchange_code(self, code: str) -> dict:
        """Trade the authorization code for a token dict."""
        if not code:
            raise ExchangeError("missing authorization code")
        try:
            token = self._session().fetch_token(GOOGLE_TOKEN_URL, code=code)
        except (AuthlibBaseError, requests.RequestException, ValueError) as exc:
            logger.error("OAuth code exchange failed: %s", exc)
            raise ExchangeError(f"code exchange failed: {exc}") from exc
        if not token or "access_token" not in token:
            raise ExchangeError("token response has no access_token")
        return dict(token)

    def fetch_identity(self, token: dict) -> OAuthIdentity:
        """Read the provider profile for token.

        Raises IdentityFetchError on transport failure, a non-2xx answer, a
        payload without id or email, or an email marked unverified [H1].
        """
        try:
            resp = self._session(token=token).get(GOOGLE_USERINFO_URL, timeout=_HTTP_TIMEOUT)
            resp.raise_for_status()
            profile = resp.json()
        except (AuthlibBaseError, requests.RequestException, ValueError) as exc:
            logger.error("OAuth userinfo request failed: %s", exc)
            raise IdentityFetchError(f"userinfo request failed: {exc}") from exc

        if not isinstance(profile, dict):
            raise IdentityFetchError("userinfo payload is not an object")
        email = profile.get("email")
        subject = profile.get("id") or profile.get("sub")
        if not email or not subject:
            raise IdentityFetchError("userinfo payload has no email or id")

        verified = profile.get("verified_email", profile.get("email_verified"))
        if verified is False:
            raise IdentityFetchError(f"email {email} is not verified by the provider")

        return OAuthIdentity(
            subject=str(subject),
            email=email,
            name=profile.get("name") or "",
            picture=profile.get("picture"),
            email_verified=verified,
        )
