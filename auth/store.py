"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Service and route
code never touches SQL directly.

Uniqueness:
  users.email carries a UNIQUE constraint. That constraint -- not the
  service-level lookup that runs before insert -- is what guarantees one row
  per email under concurrent signups. create_user() turns the resulting
  IntegrityError into DuplicateUserError so callers see one error type no
  matter which check caught the duplicate.

Errors:
  Any other SQLAlchemyError is logged with the operation name and re-raised
  as StorageError. The route layer maps that to a generic 500.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or security/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Role, User
from core.errors import DuplicateUserError, StorageError

logger = logging.getLogger("usergate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),  # bcrypt hash, never plaintext
    Column("role", String(50), nullable=False, server_default=Role.USER.value),
    Column("created_at", String(32), nullable=False),
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


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate unexpected SQLAlchemy failures into StorageError."""
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageError(f"Storage failure during {operation}") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///usergate.db")
        store.create_user("Ada", "ada@example.com", hasher.hash_password("secret"))
        user = store.find_by_email("ada@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with _storage_errors("find_by_email"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email).limit(1)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with _storage_errors("get_by_id"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by id."""
        with _storage_errors("list_users"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users(self) -> int:
        with _storage_errors("count_users"), self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Database ping failed: %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, name: str, email: str, password_hash: str, role: str = Role.USER.value) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        Raises DuplicateUserError when the UNIQUE(email) constraint rejects
        the insert -- including the race where a concurrent signup committed
        the same email after the caller's pre-check.
        """
        now = _now_iso()
        try:
            with _storage_errors("create_user"), self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        name=name,
                        email=email,
                        password=password_hash,
                        role=role,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            logger.info("Insert rejected by unique constraint for %s", email)
            raise DuplicateUserError() from exc
        return User(
            id=result.inserted_primary_key[0],
            name=name,
            email=email,
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password,
        role=row.role,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
