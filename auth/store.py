"""
auth/store.py -- SQLAlchemy Core persistence for credential records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Service and route code never touches SQL directly.

The users table is owned by the wider application; this subsystem needs only
lookup by subject identifier, lookup by email, and a full-record update
(used to backfill confirmed_at / avatar after the first Google login).
create_user exists for seeding and tests.

Security:
  All queries use bound parameters. No f-strings in SQL.

Timestamps are stored as ISO 8601 text, which keeps the schema portable
between SQLite (dev/tests) and PostgreSQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import User

_DEFAULT_DB_URL = "sqlite:///tzlev.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("zehut", String(32), primary_key=True),  # subject identifier
    Column("first_name", String(255), nullable=False, server_default=""),
    Column("last_name", String(255), nullable=False, server_default=""),
    Column("email", String(255), index=True),
    Column("avatar", Text),
    Column("role", String(64)),
    Column("is_admin", Boolean, nullable=False, server_default="0"),
    Column("hashed_password", Text),  # NULL for Google-only accounts
    Column("confirmed_at", String(32)),
    Column("inserted_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for credential records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        store.create_user(User(subject_id="123456789", email="a@b.c", hashed_password=hash_password("x")))
        user = store.find_by_subject_id("123456789")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> None:
        """Round-trip a trivial query. Raises sqlalchemy.exc.SQLAlchemyError on failure."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def create_user(self, user: User) -> str:
        """Insert a new user and return its subject identifier.

        Raises sqlalchemy.exc.IntegrityError if the subject already exists.
        """
        now = _to_iso(_now())
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    zehut=user.subject_id,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    email=user.email,
                    avatar=user.avatar,
                    role=user.role,
                    is_admin=user.is_admin,
                    hashed_password=user.hashed_password,
                    confirmed_at=_to_iso(user.confirmed_at),
                    inserted_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return user.subject_id

    def find_by_subject_id(self, subject_id: str) -> User | None:
        """Look up a user by subject identifier. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.zehut == subject_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found.

        The Google callback matches on this -- accounts are pre-created with
        the address the user will sign in with.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update(self, user: User) -> bool:
        """Write every mutable field of user back and stamp updated_at.

        Returns True if a row was updated, False if the subject was not found.
        """
        user.updated_at = _now()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.zehut == user.subject_id)
                .values(
                    first_name=user.first_name,
                    last_name=user.last_name,
                    email=user.email,
                    avatar=user.avatar,
                    role=user.role,
                    is_admin=user.is_admin,
                    hashed_password=user.hashed_password,
                    confirmed_at=_to_iso(user.confirmed_at),
                    updated_at=_to_iso(user.updated_at),
                )
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        """Dispose of the connection pool. Call on application shutdown."""
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        subject_id=row.zehut,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        email=row.email,
        avatar=row.avatar,
        role=row.role,
        is_admin=bool(row.is_admin),
        hashed_password=row.hashed_password,
        confirmed_at=_from_iso(row.confirmed_at),
        inserted_at=_from_iso(row.inserted_at),
        updated_at=_from_iso(row.updated_at),
    )
