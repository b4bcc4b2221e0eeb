"""
tests/conftest.py -- Shared fixtures for the tzlev test suite.

This module provides:
  - FakeRedis: an in-memory stand-in for the redis-py client surface that
    KeyValueStore uses, with a manual clock so TTL expiry can be simulated
    and per-command fault injection (fail_ops) for outage paths
  - store fixtures: kv, cache, sessions, user_store, users, auth_service
  - oauth fixtures: a GoogleOAuthClient whose authlib session is a MagicMock
  - api_client: TestClient over the real FastAPI app with a patched lifespan

The DEBUG env var must be set before any core/auth import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import fnmatch
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from unittest.mock import MagicMock

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from auth.models import User
from auth.oauth import GoogleOAuthClient
from auth.passwords import hash_password
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.users import UserService
from cache.store import CacheManager
from core.config import get_settings
from core.kv import KeyValueStore

# bcrypt at cost 12 is deliberately slow; hash the fixture password once.
CORRECT_PASSWORD = "correct"
CORRECT_HASH = hash_password(CORRECT_PASSWORD)

SUBJECT_ID = "123456789"
SUBJECT_EMAIL = "dana@example.com"


# ---------------------------------------------------------------------------
# Redis test double
# ---------------------------------------------------------------------------


class FakeRedis:
    """Dict-backed subset of redis.Redis with a controllable clock.

    Keys expire when the clock reaches their deadline, mirroring Redis' lazy
    expiry. commands records (op, key) for every call so tests can assert on
    write amplification. Any op named in fail_ops raises ConnectionError;
    "*" fails everything.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._data: dict[str, bytes] = {}
        self._deadline: dict[str, float] = {}
        self.commands: list[tuple[str, str]] = []
        self.fail_ops: set[str] = set()

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def ttl_of(self, key: str) -> float | None:
        deadline = self._deadline.get(key)
        return None if deadline is None else deadline - self.now

    def _check(self, op: str, key: str) -> None:
        self.commands.append((op, key))
        if op in self.fail_ops or "*" in self.fail_ops:
            raise RedisConnectionError(f"Error 111 connecting to localhost:6379. Connection refused. ({op})")

    def _alive(self, key: str) -> bool:
        deadline = self._deadline.get(key)
        if deadline is not None and deadline <= self.now:
            self._data.pop(key, None)
            self._deadline.pop(key, None)
        return key in self._data

    def ping(self) -> bool:
        self._check("ping", "-")
        return True

    def set(self, name: str, value, ex=None) -> bool:
        self._check("set", name)
        self._data[name] = value if isinstance(value, bytes) else str(value).encode("utf-8")
        if ex is None:
            self._deadline.pop(name, None)
        else:
            self._deadline[name] = self.now + ex
        return True

    def get(self, name: str) -> bytes | None:
        self._check("get", name)
        return self._data[name] if self._alive(name) else None

    def delete(self, *names: str) -> int:
        self._check("delete", names[0] if names else "")
        removed = 0
        for name in names:
            if self._alive(name):
                del self._data[name]
                self._deadline.pop(name, None)
                removed += 1
        return removed

    def expire(self, name: str, time: int) -> bool:
        self._check("expire", name)
        if not self._alive(name):
            return False
        self._deadline[name] = self.now + time
        return True

    def exists(self, *names: str) -> int:
        self._check("exists", names[0] if names else "")
        return sum(1 for n in names if self._alive(n))

    def scan_iter(self, match=None, count=None):
        self._check("scan", match or "*")
        for key in list(self._data):
            if self._alive(key) and (match is None or fnmatch.fnmatchcase(key, match)):
                yield key.encode("utf-8")

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def kv(fake_redis: FakeRedis) -> KeyValueStore:
    return KeyValueStore(fake_redis)


@pytest.fixture
def cache(kv: KeyValueStore) -> CacheManager:
    return CacheManager(kv)


@pytest.fixture
def sessions(kv: KeyValueStore) -> SessionStore:
    return SessionStore(kv)


def _seed_user() -> User:
    return User(
        subject_id=SUBJECT_ID,
        first_name="Dana",
        last_name="Levi",
        email=SUBJECT_EMAIL,
        role="teacher",
        is_admin=False,
        hashed_password=CORRECT_HASH,
    )


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    """In-memory UserStore seeded with one password account."""
    store = UserStore("sqlite:///:memory:")
    store.create_user(_seed_user())
    yield store
    store.close()


@pytest.fixture
def users(user_store: UserStore, cache: CacheManager) -> UserService:
    return UserService(user_store, cache)


# ---------------------------------------------------------------------------
# OAuth fixtures
# ---------------------------------------------------------------------------


GOOGLE_PROFILE = {
    "id": "google-uid-42",
    "email": SUBJECT_EMAIL,
    "verified_email": True,
    "name": "Dana Levi",
    "picture": "https://lh3.googleusercontent.com/a/dana.png",
}


@pytest.fixture
def oauth_session() -> MagicMock:
    """The authlib OAuth2Session every leg of the flow talks to."""
    session = MagicMock(name="OAuth2Session")
    session.create_authorization_url.side_effect = lambda url, state=None, **kw: (f"{url}?state={state}", state)
    session.fetch_token.return_value = {"access_token": "ya29.test", "token_type": "Bearer", "expires_in": 3599}
    userinfo = MagicMock(name="userinfo_response")
    userinfo.json.return_value = dict(GOOGLE_PROFILE)
    session.get.return_value = userinfo
    return session


@pytest.fixture
def oauth_client(oauth_session: MagicMock) -> GoogleOAuthClient:
    return GoogleOAuthClient(
        "client-id",
        "client-secret",
        "http://testserver/api/v1/auth/google/callback",
        session_factory=MagicMock(return_value=oauth_session),
    )


@pytest.fixture
def auth_service(users: UserService, sessions: SessionStore, oauth_client: GoogleOAuthClient) -> AuthService:
    return AuthService(users, sessions, oauth_client)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    redis: FakeRedis
    user_store: UserStore
    oauth_session: MagicMock


def _patch_lifespan(fake: FakeRedis, user_store: UserStore, oauth: GoogleOAuthClient):
    """Return a lifespan that wires test doubles into app.state instead of real connections."""
    from api.main import wire_services

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, KeyValueStore(fake), user_store, get_settings(), oauth)
        yield

    return test_lifespan


@pytest.fixture
def api_client(fake_redis: FakeRedis, oauth_client: GoogleOAuthClient, oauth_session: MagicMock):
    """Yield an ApiHarness around the real app with isolated stores.

    Named shared-memory SQLite URIs are required because TestClient runs sync
    route handlers in a thread pool; plain :memory: is per-connection and
    would show each worker thread a blank schema.
    """
    from api.limiter import limiter
    from api.main import app

    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = UserStore(db_url)
    store.create_user(_seed_user())

    limiter.enabled = False
    app.router.lifespan_context = _patch_lifespan(fake_redis, store, oauth_client)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, redis=fake_redis, user_store=store, oauth_session=oauth_session)

    limiter.enabled = True
    store.close()
