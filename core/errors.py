"""
core/errors.py -- Error taxonomy shared by the store, cache, session and auth layers.

Every exception carries the HTTP status and stable error code it maps to plus
a fixed public message. api/main.py renders these attributes and nothing else,
so the text a client sees never depends on which internal path failed. The
constructor message is for logs only.

Families:
  infrastructure  StoreError (always surfaced, 503)
  control flow    CacheMiss, SessionNotFound (expected, not failures)
  data integrity  SerializationError, DeserializationError, CorruptRecord
  user-facing     AuthFailed, NotAuthorized, Unauthenticated
  OAuth protocol  InvalidState, ExchangeError, IdentityFetchError

Layer rule: core/ is the kernel. No imports from api/, auth/, or cache/.
"""

from __future__ import annotations


class TzlevError(Exception):
    """Base class for every error raised by this package."""

    status_code: int = 500
    error_code: str = "internal_error"
    public_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


# ---------------------------------------------------------------------------
# Key-value store
# ---------------------------------------------------------------------------


class StoreError(TzlevError):
    """The key-value store could not be reached or rejected the command."""

    status_code = 503
    error_code = "store_unavailable"
    public_message = "Service temporarily unavailable."


# ---------------------------------------------------------------------------
# Cache manager
# ---------------------------------------------------------------------------


class CacheMiss(TzlevError):
    """No entry for the key. Callers fall back to the source of truth."""

    status_code = 404
    error_code = "cache_miss"
    public_message = "Not cached."

    def __init__(self, key: str) -> None:
        super().__init__(f"cache miss: {key}")
        self.key = key


class SerializationError(TzlevError):
    error_code = "serialization_error"


class DeserializationError(TzlevError):
    error_code = "deserialization_error"


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------


class SessionNotFound(TzlevError):
    """Session is absent or its TTL elapsed."""

    status_code = 401
    error_code = "unauthenticated"
    public_message = "Not authenticated."


class CorruptRecord(TzlevError):
    """Stored session bytes do not parse. Never treated as a valid session."""

    status_code = 401
    error_code = "unauthenticated"
    public_message = "Not authenticated."


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthFailed(TzlevError):
    """Login rejected. Unknown subject and wrong password share this error."""

    status_code = 401
    error_code = "invalid_credentials"
    public_message = "Invalid credentials."


class NotAuthorized(AuthFailed):
    """OAuth identity has no pre-existing account."""

    status_code = 403
    error_code = "not_authorized"
    public_message = "User not authorized. Please contact administrator."


class Unauthenticated(TzlevError):
    """The request carries no valid session."""

    status_code = 401
    error_code = "unauthenticated"
    public_message = "Not authenticated."


# ---------------------------------------------------------------------------
# OAuth authorization-code flow
# ---------------------------------------------------------------------------


class OAuthFlowError(TzlevError):
    """Any OAuth failure. The login attempt is void; no session is created."""

    status_code = 400
    error_code = "oauth_failed"
    public_message = "OAuth login failed."


class InvalidState(OAuthFlowError):
    error_code = "invalid_state"
    public_message = "Invalid state parameter."


class ExchangeError(OAuthFlowError):
    status_code = 502
    error_code = "oauth_exchange_failed"
    public_message = "Failed to exchange token."


class IdentityFetchError(OAuthFlowError):
    status_code = 502
    error_code = "oauth_identity_failed"
    public_message = "Failed to get user info."


__all__ = [
    "TzlevError",
    "StoreError",
    "CacheMiss",
    "SerializationError",
    "DeserializationError",
    "SessionNotFound",
    "CorruptRecord",
    "AuthFailed",
    "NotAuthorized",
    "Unauthenticated",
    "OAuthFlowError",
    "InvalidState",
    "ExchangeError",
    "IdentityFetchError",
]
