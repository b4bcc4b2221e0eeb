"""
auth/passwords.py -- bcrypt password hashing and verification.

Passwords: bcrypt with a fixed cost of 12. Hashing takes a few hundred
  milliseconds, which is slow enough to make offline brute force expensive
  and fast enough for an interactive login.

Verification goes through bcrypt's own checkpw path. A wrong password, a
  malformed hash, and an input bcrypt refuses (over 72 bytes) all collapse to
  False -- the caller never learns which.

_DUMMY_HASH enables timing equalization in AuthService.login_with_password()
  so response time does not reveal whether a subject exists [C1].

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection trips bcrypt 4.x's 72-byte check, and the wrapper adds nothing here.
"""

from __future__ import annotations

import bcrypt

BCRYPT_ROUNDS = 12


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at import so the first login is not measurably slower than
# later ones.
_DUMMY_HASH: str = hash_password("tzlev_timing_dummy")


def burn_verify(plain: str) -> None:
    """Spend one bcrypt verification against the dummy hash and discard the result [C1]."""
    verify_password(plain, _DUMMY_HASH)
