"""
auth/store.py -- SQLAlchemy Core persistence layer for users and refresh tokens.

Pattern: Repository + Data Mapper. UserStore and SqlRefreshTokenStore are the
repositories; _row_to_user / _row_to_refresh_token are the mappers. Services
never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  SqlRefreshTokenStore.revoke() is the only write that changes a refresh
  token's state, and it is a single conditional UPDATE:

      UPDATE refresh_tokens
         SET revoked = 1, replaced_by_token = :replacement
       WHERE token = :token AND revoked = 0

  The database evaluates the WHERE clause and applies the SET atomically, so
  of two concurrent callers exactly one sees rowcount == 1. Do not replace
  this with a SELECT followed by an UPDATE -- that reopens the double
  rotation race.

Timestamps are stored as ISO 8601 UTC strings and mapped back to aware
datetimes.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError as SAIntegrityError

from auth.errors import AlreadyExists
from auth.models import RefreshToken, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(1024), nullable=False, unique=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("revoked", Integer, nullable=False, server_default="0"),
    Column("replaced_by_token", String(1024)),  # NULL unless revoked by rotation
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL mode and foreign key enforcement on every new connection.

    SQLite PRAGMAs are per-connection and are not inherited by new connections
    from the pool. Foreign keys are off by default in SQLite.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_db_engine(db_url: str) -> Engine:
    """Create an engine for db_url and make sure both tables exist.

    Both stores share one engine so the refresh_tokens -> users foreign key
    lives in the same database.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class UserStore:
    """UserDirectory backed by the users table.

    Usage:
        engine = create_db_engine("sqlite:///authrotor.db")
        users = UserStore(engine)
        user = users.create(User(email="a@b.c", name="Alice", password_hash=h))
        users.find_by_email("a@b.c")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps assigned.

        The UNIQUE(email) constraint is the final arbiter of duplicates: two
        concurrent registrations can both pass exists_by_email(), only one
        insert succeeds, and the loser gets AlreadyExists.
        """
        now = datetime.now(timezone.utc)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        email=user.email,
                        name=user.name,
                        password_hash=user.password_hash,
                        role=user.role,
                        created_at=_to_iso(now),
                        updated_at=_to_iso(now),
                    )
                )
                conn.commit()
        except SAIntegrityError as exc:
            raise AlreadyExists() from exc
        return User(
            id=result.inserted_primary_key[0],
            email=user.email,
            name=user.name,
            role=user.role,
            password_hash=user.password_hash,
            created_at=now,
            updated_at=now,
        )

    def find_by_email(self, email: str) -> User | None:
        """Exact, case-sensitive lookup. Returns None for blank input."""
        if not email or not email.strip():
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def exists_by_email(self, email: str) -> bool:
        if not email or not email.strip():
            return False
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.email == email)).first()
        return row is not None

    def delete(self, user_id: int) -> bool:
        """Delete a user row. Returns True if deleted, False if not found.

        Refresh tokens must be removed first (foreign key). Use
        AccountDeletionService rather than calling this directly.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0


class SqlRefreshTokenStore:
    """RefreshTokenStore backed by the refresh_tokens table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def save(self, record: RefreshToken) -> RefreshToken:
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.insert().values(
                    token=record.token,
                    user_id=record.user_id,
                    expires_at=_to_iso(record.expires_at),
                    created_at=_to_iso(record.created_at),
                    revoked=1 if record.revoked else 0,
                    replaced_by_token=record.replaced_by_token,
                )
            )
            conn.commit()
        return RefreshToken(
            id=result.inserted_primary_key[0],
            token=record.token,
            user_id=record.user_id,
            expires_at=record.expires_at,
            created_at=record.created_at,
            revoked=record.revoked,
            replaced_by_token=record.replaced_by_token,
        )

    def find_active_by_value(self, token: str) -> RefreshToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _refresh_tokens.select().where((_refresh_tokens.c.token == token) & (_refresh_tokens.c.revoked == 0))
            ).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def find_by_value(self, token: str) -> RefreshToken | None:
        """Return the record in any state. For auditing; never use it to authorize."""
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def revoke(self, token: str, replacement: str | None) -> int:
        """Conditionally revoke token. Returns 1 if this call revoked it, else 0.

        See the module docstring: this is the system's only concurrency
        control primitive and must stay a single conditional UPDATE.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.token == token) & (_refresh_tokens.c.revoked == 0))
                .values(revoked=1, replaced_by_token=replacement)
            )
            conn.commit()
        return result.rowcount

    def delete_all_for_user(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def list_for_user(self, user_id: int) -> list[RefreshToken]:
        """Return every record owned by user_id, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _refresh_tokens.select().where(_refresh_tokens.c.user_id == user_id).order_by(_refresh_tokens.c.id)
            ).fetchall()
        return [_row_to_refresh_token(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        role=row.role,
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        expires_at=_from_iso(row.expires_at),
        created_at=_from_iso(row.created_at),
        revoked=bool(row.revoked),
        replaced_by_token=row.replaced_by_token,
    )
