"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
CredentialStore owns the users table, SessionStore owns the sessions table;
_row_to_user / _row_to_session are the mappers. Route and authenticator code
never touches SQL directly.

Connections:
  One pooled AsyncEngine is created at startup (create_store_engine) and
  shared by both repositories. Every repository call checks out its own
  connection and returns plain result values, so concurrent requests never
  share a transaction or a result buffer. A slow query only holds one pool
  slot instead of blocking every other request.

Errors:
  "Not found" is a normal result (None), never an exception.
  A UNIQUE(email) violation surfaces as DuplicateEmailError -- the caller
  decides whether that is a user error (signup) or a race to resolve
  (federated login). Any other driver or connection failure becomes
  StoreUnavailable.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, web/, or posts/.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, event, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from auth.errors import DuplicateEmailError, StoreUnavailable
from auth.models import SessionRecord, User

logger = logging.getLogger("quillblog.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    # bcrypt hash, or FEDERATED_MARKER for accounts without a local password
    Column("password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("session_id", String(64), primary_key=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("auth_method", String(20), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def create_store_engine(db_url: str, pool_size: int = 5, max_overflow: int = 10) -> AsyncEngine:
    """Create the shared pooled engine.

    Pool sizing only applies to server databases (postgresql+asyncpg://...).
    SQLite picks its own pool class and rejects the sizing arguments.
    """
    if db_url.startswith("sqlite"):
        engine = create_async_engine(db_url)
        event.listen(engine.sync_engine, "connect", _set_wal_mode)
        return engine
    return create_async_engine(
        db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
    )


async def init_schema(engine: AsyncEngine) -> None:
    """Create the users and sessions tables if they do not exist."""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)
    except (DBAPIError, OSError) as exc:
        raise StoreUnavailable(f"Could not initialise schema: {exc}") from exc


async def ping(engine: AsyncEngine) -> bool:
    """Return True if a connection can be checked out and queried."""
    try:
        async with _connect(engine) as conn:
            await conn.execute(text("SELECT 1"))
    except StoreUnavailable:
        return False
    return True


@asynccontextmanager
async def _connect(engine: AsyncEngine) -> AsyncIterator[AsyncConnection]:
    try:
        async with engine.connect() as conn:
            yield conn
    except IntegrityError:
        raise
    except (DBAPIError, OSError) as exc:
        logger.error("Credential store unavailable: %s", exc)
        raise StoreUnavailable(str(exc)) from exc


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    # Fixed-width timestamps so expires_at compares correctly as text.
    return moment.isoformat(timespec="microseconds")


def normalize_email(email: str) -> str:
    """Canonical form of the reconciliation key: trimmed and lowercased."""
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User rows -- the only code that reads or writes users.

    Usage:
        store = CredentialStore(engine)
        user = await store.create("a@x.com", hash_password("pw1"))
        same = await store.find_by_email("a@x.com")
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def find_by_email(self, email: str) -> User | None:
        """Look up a user by normalized email. Returns None if not found."""
        async with _connect(self.engine) as conn:
            result = await conn.execute(_users.select().where(_users.c.email == normalize_email(email)))
            row = result.fetchone()
        return _row_to_user(row) if row is not None else None

    async def find_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        async with _connect(self.engine) as conn:
            result = await conn.execute(_users.select().where(_users.c.id == user_id))
            row = result.fetchone()
        return _row_to_user(row) if row is not None else None

    async def create(self, email: str, credential_marker: str) -> User:
        """Insert a new user and return it with its assigned id.

        Raises DuplicateEmailError if a row for this email already exists,
        including when a concurrent request inserted it a moment earlier.
        """
        email = normalize_email(email)
        created_at = _iso(_now())
        async with _connect(self.engine) as conn:
            try:
                result = await conn.execute(
                    _users.insert().values(email=email, password=credential_marker, created_at=created_at)
                )
                await conn.commit()
            except IntegrityError as exc:
                raise DuplicateEmailError(email) from exc
        return User(
            id=result.inserted_primary_key[0],
            email=email,
            credential_marker=credential_marker,
            created_at=created_at,
        )


class SessionStore:
    """Repository for server-side session records.

    The browser only ever holds the opaque session_id; everything else stays
    in this table.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def create(self, user_id: int, auth_method: str, ttl_seconds: int) -> SessionRecord:
        now = _now()
        record = SessionRecord(
            session_id=secrets.token_urlsafe(32),
            user_id=user_id,
            auth_method=auth_method,
            created_at=_iso(now),
            expires_at=_iso(now + timedelta(seconds=ttl_seconds)),
        )
        async with _connect(self.engine) as conn:
            await conn.execute(
                _sessions.insert().values(
                    session_id=record.session_id,
                    user_id=record.user_id,
                    auth_method=record.auth_method,
                    created_at=record.created_at,
                    expires_at=record.expires_at,
                )
            )
            await conn.commit()
        return record

    async def get(self, session_id: str) -> SessionRecord | None:
        """Return the record for session_id, expired or not. None if unknown."""
        async with _connect(self.engine) as conn:
            result = await conn.execute(_sessions.select().where(_sessions.c.session_id == session_id))
            row = result.fetchone()
        return _row_to_session(row) if row is not None else None

    async def delete(self, session_id: str) -> bool:
        """Remove a session. Returns True if a row was deleted."""
        async with _connect(self.engine) as conn:
            result = await conn.execute(_sessions.delete().where(_sessions.c.session_id == session_id))
            await conn.commit()
        return result.rowcount > 0

    async def purge_expired(self) -> int:
        """Delete every expired session. Returns number of rows removed."""
        async with _connect(self.engine) as conn:
            result = await conn.execute(_sessions.delete().where(_sessions.c.expires_at < _iso(_now())))
            await conn.commit()
        return result.rowcount

    @staticmethod
    def is_expired(record: SessionRecord) -> bool:
        return record.expires_at <= _iso(_now())


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        credential_marker=row.password,
        created_at=row.created_at,
    )


def _row_to_session(row) -> SessionRecord:
    return SessionRecord(
        session_id=row.session_id,
        user_id=row.user_id,
        auth_method=row.auth_method,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
