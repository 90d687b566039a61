"""
auth/store.py -- SQLAlchemy Core reference stores for auth entities.

Pattern: Repository + Data Mapper. SQLUserStore, SQLGroupStore and
SQLThrottleStore are the repositories (they satisfy the protocols in
auth/interfaces.py); the _row_to_* functions are the mappers. Components never
touch SQL directly.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py stay the
authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The login column is chosen from a whitelist, never from caller input.

Concurrency:
  Each call opens a short-lived connection. save() writes the whole record in
  one statement, but the core's read-modify-write sequences (throttle counts,
  persist codes) are not serialized across requests. Deployments with
  concurrent logins for the same account should add row-level locking.

Usage:
    engine = create_auth_engine("sqlite:///gatehouse.db")
    users = SQLUserStore(engine, login_attribute="email")
    groups = SQLGroupStore(engine)
    throttles = SQLThrottleStore(engine)
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.errors import UserExistsError
from auth.models import Group, ThrottleRecord, User

DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'gatehouse.db'}"

LOGIN_ATTRIBUTES = frozenset({"email", "username"})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), unique=True),
    Column("username", String(255), unique=True),
    Column("password", Text),
    Column("is_activated", Integer, nullable=False, server_default="0"),
    Column("activated_at", String(32)),
    Column("last_login", String(32)),
    Column("persist_code", String(64), index=True),  # HMAC-SHA256 hex
    Column("activation_code", String(64)),
    Column("reset_password_code", String(64)),
    Column("created_at", String(32), nullable=False),
)

_groups = Table(
    "groups",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("permissions", Text, nullable=False, server_default="{}"),  # JSON object
    Column("created_at", String(32), nullable=False),
)

# The autoincrement id doubles as the membership order that decides which
# group wins a permission conflict.
_user_groups = Table(
    "user_groups",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("group_id", Integer, ForeignKey("groups.id"), nullable=False),
    UniqueConstraint("user_id", "group_id", name="uq_user_group"),
)

_throttle = Table(
    "throttle",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, unique=True),
    Column("attempts", Integer, nullable=False, server_default="0"),
    Column("suspended_until", String(32)),
    Column("banned", Integer, nullable=False, server_default="0"),
    Column("last_attempt_at", String(32)),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_auth_engine(db_url: str = DEFAULT_DB_URL) -> Engine:
    """Create an engine for db_url and make sure the auth schema exists.

    In-memory SQLite URLs get a StaticPool so every connection (and every
    thread, e.g. under TestClient) sees the same database.
    """
    kwargs: dict = {}
    if db_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in db_url or "mode=memory" in db_url:
            kwargs["poolclass"] = StaticPool
    engine = create_engine(db_url, **kwargs)
    if db_url.startswith("sqlite") and "poolclass" not in kwargs:
        event.listen(engine, "connect", _set_wal_mode)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    # Naive values are treated as UTC.
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


def _validate_permissions(permissions: dict[str, int]) -> dict[str, int]:
    clean: dict[str, int] = {}
    for name, value in permissions.items():
        if not isinstance(name, str) or not name:
            raise ValueError(f"Permission names must be non-empty strings, got {name!r}")
        if value not in (0, 1):
            raise ValueError(f"Permission {name!r} must be 0 (deny) or 1 (grant), got {value!r}")
        clean[name] = int(value)
    return clean


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class SQLUserStore:
    """Repository for User records."""

    def __init__(self, engine: Engine, login_attribute: str = "email") -> None:
        if login_attribute not in LOGIN_ATTRIBUTES:
            raise ValueError(f"Unknown login attribute {login_attribute!r}; choose one of {sorted(LOGIN_ATTRIBUTES)}")
        self.engine = engine
        self.login_attribute = login_attribute

    def find_by_login(self, login: str) -> User | None:
        """Look up a user by exact login (case-sensitive). Returns None if not found."""
        column = _users.c[self.login_attribute]
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(column == login)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_persist_code(self, digest: str) -> User | None:
        """Look up a user by the stored persist-code digest. O(1) via index."""
        if not digest:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.persist_code == digest)).fetchone()
        return _row_to_user(row) if row is not None else None

    def save(self, user: User) -> User:
        """Insert or update user.

        Raises UserExistsError if the email or username is already taken by
        another record (the UNIQUE constraint catches races the caller's
        pre-check could not).
        """
        values = {
            "email": user.email,
            "username": user.username,
            "password": user.password,
            "is_activated": 1 if user.is_activated else 0,
            "activated_at": user.activated_at,
            "last_login": user.last_login,
            "persist_code": user.persist_code,
            "activation_code": user.activation_code,
            "reset_password_code": user.reset_password_code,
        }
        try:
            with self.engine.connect() as conn:
                if user.id is None:
                    user.created_at = user.created_at or _now_iso()
                    result = conn.execute(_users.insert().values(created_at=user.created_at, **values))
                    user.id = result.inserted_primary_key[0]
                else:
                    conn.execute(_users.update().where(_users.c.id == user.id).values(**values))
                conn.commit()
        except IntegrityError as exc:
            login = getattr(user, self.login_attribute)
            raise UserExistsError(f"A user already exists with login [{login}], logins must be unique.") from exc
        return user

    def delete(self, user: User) -> None:
        """Delete the user, its group memberships and its throttle record in one transaction."""
        if user.id is None:
            return
        with self.engine.begin() as conn:
            conn.execute(_user_groups.delete().where(_user_groups.c.user_id == user.id))
            conn.execute(_throttle.delete().where(_throttle.c.user_id == user.id))
            conn.execute(_users.delete().where(_users.c.id == user.id))

    def list_users(self) -> list[User]:
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class SQLGroupStore:
    """Repository for Group records and user/group memberships."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def find_by_id(self, group_id: int) -> Group | None:
        with self.engine.connect() as conn:
            row = conn.execute(_groups.select().where(_groups.c.id == group_id)).fetchone()
        return _row_to_group(row) if row is not None else None

    def find_by_name(self, name: str) -> Group | None:
        with self.engine.connect() as conn:
            row = conn.execute(_groups.select().where(_groups.c.name == name)).fetchone()
        return _row_to_group(row) if row is not None else None

    def save(self, group: Group) -> Group:
        """Insert or update group. Raises ValueError for values outside {0, 1}."""
        permissions = json.dumps(_validate_permissions(group.permissions), sort_keys=True)
        with self.engine.connect() as conn:
            if group.id is None:
                group.created_at = group.created_at or _now_iso()
                result = conn.execute(
                    _groups.insert().values(name=group.name, permissions=permissions, created_at=group.created_at)
                )
                group.id = result.inserted_primary_key[0]
            else:
                conn.execute(
                    _groups.update().where(_groups.c.id == group.id).values(name=group.name, permissions=permissions)
                )
            conn.commit()
        return group

    def groups_for_user(self, user_id: int) -> list[Group]:
        """Return the user's groups, oldest membership first."""
        query = (
            _groups.select()
            .join(_user_groups, _user_groups.c.group_id == _groups.c.id)
            .where(_user_groups.c.user_id == user_id)
            .order_by(_user_groups.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_group(r) for r in rows]

    def add_member(self, user_id: int, group_id: int) -> None:
        """Add the membership. Idempotent: an existing membership keeps its position."""
        with self.engine.connect() as conn:
            exists = conn.execute(
                _user_groups.select().where(
                    (_user_groups.c.user_id == user_id) & (_user_groups.c.group_id == group_id)
                )
            ).fetchone()
            if exists is None:
                conn.execute(_user_groups.insert().values(user_id=user_id, group_id=group_id))
                conn.commit()

    def remove_member(self, user_id: int, group_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _user_groups.delete().where((_user_groups.c.user_id == user_id) & (_user_groups.c.group_id == group_id))
            )
            conn.commit()


# ---------------------------------------------------------------------------
# Throttle
# ---------------------------------------------------------------------------


class SQLThrottleStore:
    """Repository for ThrottleRecord rows (one per user)."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def find_by_user_id(self, user_id: int) -> ThrottleRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_throttle.select().where(_throttle.c.user_id == user_id)).fetchone()
        return _row_to_throttle(row) if row is not None else None

    def save(self, record: ThrottleRecord) -> ThrottleRecord:
        values = {
            "attempts": record.attempts,
            "suspended_until": _to_iso(record.suspended_until),
            "banned": 1 if record.banned else 0,
            "last_attempt_at": _to_iso(record.last_attempt_at),
        }
        with self.engine.connect() as conn:
            if record.id is None:
                result = conn.execute(_throttle.insert().values(user_id=record.user_id, **values))
                record.id = result.inserted_primary_key[0]
            else:
                conn.execute(_throttle.update().where(_throttle.c.id == record.id).values(**values))
            conn.commit()
        return record

    def delete_for_user(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_throttle.delete().where(_throttle.c.user_id == user_id))
            conn.commit()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        password=row.password,
        is_activated=bool(row.is_activated),
        activated_at=row.activated_at,
        last_login=row.last_login,
        persist_code=row.persist_code,
        activation_code=row.activation_code,
        reset_password_code=row.reset_password_code,
        created_at=row.created_at,
    )


def _row_to_group(row) -> Group:
    return Group(
        id=row.id,
        name=row.name,
        permissions=json.loads(row.permissions or "{}"),
        created_at=row.created_at,
    )


def _row_to_throttle(row) -> ThrottleRecord:
    return ThrottleRecord(
        id=row.id,
        user_id=row.user_id,
        attempts=row.attempts,
        suspended_until=_from_iso(row.suspended_until),
        banned=bool(row.banned),
        last_attempt_at=_from_iso(row.last_attempt_at),
    )
