"""
auth/store.py -- SQLAlchemy Core persistence layer for RBAC entities.

Pattern: Repository + Data Mapper.
RBACStore is the repository; _row_to_user / _row_to_role are the mappers.
Service and route code never touches SQL directly. The store holds no
authorization logic: it does not check that a user's role or a role's
permission entries exist in the other registries.

Security:
  All queries use bound parameters. No f-strings in SQL.

Error mapping:
  UNIQUE violations surface as ConflictError, so two racing creates of the
  same username or role name resolve to exactly one success. Writes that
  match no row raise NotFoundError. Any other SQLAlchemyError becomes
  InternalError; the SQL text is logged, never returned.

Transactions:
  set_permissions() runs delete-all + insert-all inside one engine.begin()
  block. Readers never observe an empty registry mid-replace, and a failed
  insert rolls the registry back to its previous contents.

app_settings:
  Single-row table (id=1 enforced by CHECK constraint) holding the persisted
  auth type. INSERT OR IGNORE ensures the row always exists after creation.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import ConflictError, InternalError, NotFoundError
from auth.models import AuthType, Role, User

logger = logging.getLogger("brickauth.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("permissions_json", Text, nullable=False, server_default="[]"),
)

_permissions = Table(
    "permissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
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


def _dedupe(names: list[str]) -> list[str]:
    """Drop repeated entries, keeping the first occurrence's position."""
    return list(dict.fromkeys(names))


def _is_unique_violation(exc: IntegrityError) -> bool:
    """True for UNIQUE / primary key collisions (SQLite and PostgreSQL wording)."""
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate key" in message


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Map driver exceptions onto the service error taxonomy."""
    try:
        yield
    except IntegrityError as exc:
        if _is_unique_violation(exc):
            raise ConflictError(f"Cannot {action}: already exists.") from exc
        logger.error("Integrity failure during %s: %s", action, exc)
        raise InternalError("Storage operation failed.") from exc
    except SQLAlchemyError as exc:
        logger.error("Store failure during %s: %s", action, exc)
        raise InternalError("Storage operation failed.") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RBACStore:
    """Repository for User, Role and Permission entities.

    Usage:
        store = RBACStore("sqlite:///./brickauth.db")
        store.create_role(Role(name="admin", permissions=["user:read"]))
        store.create_user(User(username="admin", password_hash=hash_password("secret"), role="admin"))
        user = store.get_user("admin")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._ensure_app_settings()

    def _ensure_app_settings(self) -> None:
        """Create the app_settings table and seed the single-row record if not present.

        The CHECK (id = 1) constraint enforces the single-row invariant at the
        DB level. INSERT OR IGNORE is idempotent -- safe to call on every startup.
        """
        with self.engine.connect() as conn:
            conn.execute(
                text(
                    """
                    CREATE TABLE IF NOT EXISTS app_settings (
                        id INTEGER PRIMARY KEY CHECK (id = 1),
                        auth_type TEXT NOT NULL DEFAULT 'local'
                    )
                    """
                )
            )
            conn.execute(text("INSERT OR IGNORE INTO app_settings (id) VALUES (1)"))
            conn.commit()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        """Return all users in insertion order."""
        with _translate_errors("list users"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def get_user(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with _translate_errors("get user"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises ConflictError if the username already exists. Under concurrent
        creates the UNIQUE index lets exactly one insert commit.
        """
        with _translate_errors("create user"), self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    password_hash=user.password_hash,
                    role=user.role,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, username: str, password_hash: str | None = None, role: str | None = None) -> None:
        """Update password hash and/or role. Fields passed as None are left unchanged.

        Raises NotFoundError if no user has that username. Passing neither
        field only checks existence.
        """
        fields: dict = {}
        if password_hash is not None:
            fields["password_hash"] = password_hash
        if role is not None:
            fields["role"] = role
        if not fields:
            if self.get_user(username) is None:
                raise NotFoundError("User not found.")
            return
        with _translate_errors("update user"), self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.username == username).values(**fields))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("User not found.")

    def delete_user(self, username: str) -> None:
        """Permanently delete a user record. Raises NotFoundError if absent."""
        with _translate_errors("delete user"), self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.username == username))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("User not found.")

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def list_roles(self) -> list[Role]:
        with _translate_errors("list roles"), self.engine.connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.id)).fetchall()
        return [_row_to_role(r) for r in rows]

    def get_role(self, name: str) -> Role | None:
        with _translate_errors("get role"), self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def create_role(self, role: Role) -> int:
        """Insert a new role. Duplicate permission entries are collapsed.

        Raises ConflictError if the role name already exists.
        """
        with _translate_errors("create role"), self.engine.connect() as conn:
            result = conn.execute(
                _roles.insert().values(
                    name=role.name,
                    permissions_json=json.dumps(_dedupe(role.permissions)),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_role(self, name: str, permissions: list[str]) -> None:
        """Replace (not merge) a role's permission set. Raises NotFoundError if absent."""
        with _translate_errors("update role"), self.engine.connect() as conn:
            result = conn.execute(
                _roles.update().where(_roles.c.name == name).values(permissions_json=json.dumps(_dedupe(permissions)))
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Role not found.")

    def delete_role(self, name: str) -> None:
        """Delete a role. Users still naming it keep the stale reference."""
        with _translate_errors("delete role"), self.engine.connect() as conn:
            result = conn.execute(_roles.delete().where(_roles.c.name == name))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Role not found.")

    # ------------------------------------------------------------------
    # Permission registry
    # ------------------------------------------------------------------

    def list_permissions(self) -> list[str]:
        with _translate_errors("list permissions"), self.engine.connect() as conn:
            rows = conn.execute(_permissions.select().order_by(_permissions.c.id)).fetchall()
        return [r.name for r in rows]

    def set_permissions(self, names: list[str]) -> None:
        """Replace the entire registry atomically.

        engine.begin() commits on success and rolls back on any exception, so
        the delete and the inserts land together or not at all.
        """
        names = _dedupe(names)
        with _translate_errors("set permissions"), self.engine.begin() as conn:
            conn.execute(_permissions.delete())
            if names:
                conn.execute(_permissions.insert(), [{"name": n} for n in names])

    # ------------------------------------------------------------------
    # App settings
    # ------------------------------------------------------------------

    def get_auth_type(self) -> AuthType:
        with _translate_errors("get auth type"), self.engine.connect() as conn:
            value = conn.execute(text("SELECT auth_type FROM app_settings WHERE id = 1")).scalar()
        # Should never be None; _ensure_app_settings() seeds this row.
        return AuthType(value or AuthType.local.value)

    def set_auth_type(self, auth_type: AuthType) -> None:
        with _translate_errors("set auth type"), self.engine.connect() as conn:
            conn.execute(
                text("UPDATE app_settings SET auth_type = :auth_type WHERE id = 1"),
                {"auth_type": auth_type.value},
            )
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role=row.role,
        created_at=row.created_at,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        permissions=json.loads(row.permissions_json or "[]"),
    )
