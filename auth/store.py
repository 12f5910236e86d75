"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
and _to_columns are the mappers. Use case and route code never touch SQL.

Contract with the auth core:
  The core never performs I/O. Use cases fetch a fresh UserRecord per request,
  compute a Transition, and call update(user_id, **transition.changes()).
  There is no cache and no row locking: two concurrent requests against one
  account race through the database (last write wins per field).

Uniqueness:
  email and username are unique across non-deleted records only. That is a
  pair of partial unique indexes (WHERE deleted_at IS NULL), supported by
  both SQLite and PostgreSQL. A soft-deleted account therefore frees its
  email for re-registration.

Timestamps are stored as ISO 8601 text with UTC offset and parsed back into
aware datetimes, so lockout and token expiry comparisons stay tz-correct on
SQLite, which has no native timezone type.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import UserRecord

_DEFAULT_DB_URL = "sqlite:///accountguard.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),  # uuid4, not autoincrement
    Column("email", String(255), nullable=False),
    Column("username", String(255), nullable=False),
    Column("password_secret", Text, nullable=False),
    Column("first_name", String(50)),
    Column("last_name", String(50)),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("is_locked", Integer, nullable=False, server_default="0"),
    Column("failed_login_attempts", Integer, nullable=False, server_default="0"),
    Column("lockout_until", String(32)),
    Column("verification_token", String(64)),
    Column("verification_token_expires", String(32)),
    Column("password_reset_token", String(64)),
    Column("password_reset_expires", String(32)),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),
)

Index(
    "ux_users_email_live",
    _users.c.email,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)
Index(
    "ux_users_username_live",
    _users.c.username,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)

_BOOL_COLUMNS = frozenset({"is_verified", "is_active", "is_locked"})
_TIME_COLUMNS = frozenset(
    {
        "lockout_until",
        "verification_token_expires",
        "password_reset_expires",
        "last_login",
        "created_at",
        "updated_at",
        "deleted_at",
    }
)
# Fields update() accepts. id and created_at are immutable once inserted.
_MUTABLE_COLUMNS = frozenset(c.name for c in _users.columns) - {"id", "created_at"}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block behind a login write.

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
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    # Rows written by other tools may lack an offset; they are UTC by convention.
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


def _to_columns(fields: dict) -> dict:
    """Convert domain values to their column representation."""
    out = {}
    for name, value in fields.items():
        if name in _BOOL_COLUMNS:
            out[name] = 1 if value else 0
        elif name in _TIME_COLUMNS:
            out[name] = _to_iso(value)
        else:
            out[name] = value
    return out


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for UserRecord entities.

    Usage:
        store = UserStore("sqlite:///accountguard.db")
        store.insert(record)
        user = store.get_by_email("a@x.com")
        store.update(user.id, failed_login_attempts=1)
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

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_email(self, email: str, include_deleted: bool = False) -> UserRecord | None:
        """Look up a live user by exact email. Returns None if not found.

        With include_deleted=True the most recently created matching record is
        returned, soft-deleted or not (used by the restore command).
        """
        query = _users.select().where(_users.c.email == email)
        if not include_deleted:
            query = query.where(_users.c.deleted_at.is_(None))
        query = query.order_by(_users.c.created_at.desc())
        with self.engine.connect() as conn:
            row = conn.execute(query).first()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> UserRecord | None:
        """Look up a live user by exact username. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.username == username) & _users.c.deleted_at.is_(None))
            ).first()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> UserRecord | None:
        """Look up a live user by primary key."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.id == user_id) & _users.c.deleted_at.is_(None))
            ).first()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, user: UserRecord) -> str:
        """Insert a new user record and return its id.

        created_at / updated_at are stamped here when the record leaves them
        unset. Raises sqlalchemy.exc.IntegrityError if the email or username
        is already used by a live record -- callers map that to a conflict.
        """
        now = _now()
        values = {c.name: getattr(user, c.name) for c in _users.columns}
        values["created_at"] = user.created_at or now
        values["updated_at"] = user.updated_at or now
        with self.engine.connect() as conn:
            conn.execute(_users.insert().values(**_to_columns(values)))
            conn.commit()
        return user.id

    def update(self, user_id: str, **fields) -> bool:
        """Persist changed fields of an existing user; updated_at is stamped.

        Accepts any UserRecord field except id and created_at; unknown names
        raise ValueError before any SQL runs. Returns True if a row was
        updated, False if user_id was not found.
        """
        unknown = set(fields) - _MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown or immutable user fields: {sorted(unknown)!r}")
        if not fields:
            return False
        values = _to_columns({**fields, "updated_at": fields.get("updated_at") or _now()})
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> UserRecord:
    return UserRecord(
        id=row.id,
        email=row.email,
        username=row.username,
        password_secret=row.password_secret,
        first_name=row.first_name,
        last_name=row.last_name,
        role=row.role,
        is_verified=bool(row.is_verified),
        is_active=bool(row.is_active),
        is_locked=bool(row.is_locked),
        failed_login_attempts=row.failed_login_attempts,
        lockout_until=_from_iso(row.lockout_until),
        verification_token=row.verification_token,
        verification_token_expires=_from_iso(row.verification_token_expires),
        password_reset_token=row.password_reset_token,
        password_reset_expires=_from_iso(row.password_reset_expires),
        last_login=_from_iso(row.last_login),
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
        deleted_at=_from_iso(row.deleted_at),
    )
