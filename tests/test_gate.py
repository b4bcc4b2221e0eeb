"""Unit tests for auth/dependencies.py -- authorize_session().

Covers:
- missing, unknown and corrupt identifiers are Unauthenticated
- a valid session yields its Identity and a refreshed TTL
- a failed refresh is reported, not raised
- a store outage on lookup propagates as StoreError
"""

from __future__ import annotations

import pytest

from auth.dependencies import authorize_session, new_session_id
from auth.models import SessionRecord
from auth.sessions import SESSION_TTL_SECONDS, SessionStore
from core.errors import StoreError, Unauthenticated


@pytest.fixture
def live_session(sessions: SessionStore) -> str:
    sessions.create("sid-1", SessionRecord(subject_id="123456789", email="dana@example.com", name="Dana Levi"))
    return "sid-1"


@pytest.mark.parametrize("session_id", [None, ""])
def test_missing_identifier(sessions: SessionStore, session_id) -> None:
    with pytest.raises(Unauthenticated):
        authorize_session(sessions, session_id)


def test_unknown_identifier(sessions: SessionStore) -> None:
    with pytest.raises(Unauthenticated):
        authorize_session(sessions, "never-issued")


def test_corrupt_record(sessions: SessionStore, fake_redis) -> None:
    fake_redis.set("tzlev:session:sid-bad", b"{not json")
    with pytest.raises(Unauthenticated):
        authorize_session(sessions, "sid-bad")


def test_valid_session_returns_identity(sessions: SessionStore, live_session: str) -> None:
    result = authorize_session(sessions, live_session)

    assert result.identity.session_id == "sid-1"
    assert result.identity.subject_id == "123456789"
    assert result.identity.name == "Dana Levi"
    assert result.refreshed is True
    assert result.refresh_error is None


def test_gate_slides_the_ttl(sessions: SessionStore, live_session: str, fake_redis) -> None:
    fake_redis.advance(SESSION_TTL_SECONDS - 10)
    authorize_session(sessions, live_session)
    assert fake_redis.ttl_of("tzlev:session:sid-1") == SESSION_TTL_SECONDS


def test_refresh_failure_is_reported_not_raised(sessions: SessionStore, live_session: str, fake_redis) -> None:
    fake_redis.fail_ops.add("expire")
    result = authorize_session(sessions, live_session)

    assert result.identity.subject_id == "123456789"
    assert result.refreshed is False
    assert isinstance(result.refresh_error, StoreError)


def test_lookup_outage_propagates(sessions: SessionStore, live_session: str, fake_redis) -> None:
    fake_redis.fail_ops.add("get")
    with pytest.raises(StoreError):
        authorize_session(sessions, live_session)


def test_new_session_ids_are_unique_and_long() -> None:
    ids = {new_session_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(len(sid) >= 43 for sid in ids)
