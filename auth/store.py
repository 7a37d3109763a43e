"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route, provider and
dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Failure mode:
  Every SQLAlchemyError is re-raised as StorageFault with the driver error
  chained as __cause__. A unique-constraint violation on insert is the one
  exception: it becomes UsernameTaken.

Collation:
  Each row carries username_key, the form of the name that lookups and the
  UNIQUE index compare. case_sensitive=True stores the name unchanged;
  case_sensitive=False stores username.casefold(), computed in Python so
  non-ASCII names fold the same way on insert and on lookup. The key is
  written at insert time, so one database must always be opened with the
  same collation.

Schema migration notes:
  A users table created before username_key existed gains the column on
  first startup, backfilled under the collation the store was opened with.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import StorageFault, UsernameTaken
from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("username_key", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

Index("uq_users_username_key", _users.c.username_key, unique=True)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageFault(f"user store {operation} failed") from exc


# ---------------------------------------------------------------------------
# Migration
# ---------------------------------------------------------------------------


def _migrate_users_table(conn, username_key) -> None:
    """Add and backfill username_key on a users table that predates it.

    Column and index names are constants, not user input.
    """
    existing = {row[1] for row in conn.execute(text("PRAGMA table_info(users)"))}
    if "username_key" in existing:
        return
    conn.execute(text("ALTER TABLE users ADD COLUMN username_key VARCHAR(255)"))  # nosemgrep
    for row in conn.execute(select(_users.c.id, _users.c.username)).fetchall():
        conn.execute(_users.update().where(_users.c.id == row.id).values(username_key=username_key(row.username)))
    conn.execute(text("CREATE UNIQUE INDEX IF NOT EXISTS uq_users_username_key ON users (username_key)"))
    conn.commit()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///users.db")
        store.create_user(User(username="alice", hashed_password=encoder.encode("secret")))
        user = store.find_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str, case_sensitive: bool = True) -> None:
        self.case_sensitive = case_sensitive
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        with _storage_errors("schema creation"):
            _metadata.create_all(self.engine)
            if db_url.startswith("sqlite"):
                with self.engine.connect() as conn:
                    _migrate_users_table(conn, self.username_key)

    def username_key(self, username: str) -> str:
        """Return the form of username that the UNIQUE index and lookups compare."""
        return username if self.case_sensitive else username.casefold()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_username(self, username: str) -> User | None:
        """Look up a user by username under the configured collation.

        Returns None if no record matches. Read-only.
        """
        with _storage_errors("lookup"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username_key == self.username_key(username))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with _storage_errors("lookup"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises UsernameTaken if the username's key already exists. The UNIQUE
        index on username_key decides, so two concurrent registrations of
        "Alice" and "alice" in case-insensitive mode cannot both succeed.
        """
        try:
            with _storage_errors("insert"), self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=user.username,
                        username_key=self.username_key(user.username),
                        hashed_password=user.hashed_password,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
                return result.inserted_primary_key[0]
        except StorageFault as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise UsernameTaken(user.username) from exc.__cause__
            raise

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
    )
