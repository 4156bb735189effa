"""
db/schema.py -- SQLAlchemy Core schema and engine factory for Gatekeeper.

One MetaData holds every table so foreign keys resolve and the RBAC join
(role -> role_permissions -> permissions) can run as a single query. Stores
in auth/ and rbac/ share the Engine built here; none of them create their own.

Every table has a synthetic integer primary key plus the semantic uniqueness
constraints the domain relies on:
  permissions       UNIQUE(method, route, action)
  roles             UNIQUE(name)
  role_permissions  UNIQUE(role_id, permission_id)  -- idempotent grant
  principal_roles   UNIQUE(principal_id, role_id)
  revoked_tokens    UNIQUE(token_hash)              -- O(1) blacklist lookup

Timestamps are ISO 8601 UTC strings (same convention as the stores) so they
sort lexicographically and compare correctly in SQL.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
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

metadata = MetaData()

# ---------------------------------------------------------------------------
# Principals and roles
# ---------------------------------------------------------------------------

principals = Table(
    "principals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("external_id", String(36), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("hashed_password", Text),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
)

roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
    Column("description", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
)

permissions = Table(
    "permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("method", String(10), nullable=False),
    Column("route", String(255), nullable=False),
    Column("action", String(100), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
    UniqueConstraint("method", "route", "action", name="uq_permissions_triple"),
    Index("ix_permissions_method", "method"),
    Index("ix_permissions_method_action", "method", "action"),
)

# ---------------------------------------------------------------------------
# Join tables
# ---------------------------------------------------------------------------

role_permissions = Table(
    "role_permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
    UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_pair"),
)

principal_roles = Table(
    "principal_roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("principal_id", Integer, ForeignKey("principals.id", ondelete="CASCADE"), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    Column("assigned_by", Integer, ForeignKey("principals.id", ondelete="SET NULL")),
    Column("assigned_at", String(32), nullable=False),
    UniqueConstraint("principal_id", "role_id", name="uq_principal_roles_pair"),
)

# ---------------------------------------------------------------------------
# Token tables
# ---------------------------------------------------------------------------

revoked_tokens = Table(
    "revoked_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("expires_at", String(32), nullable=False),
    Column("principal_external_id", String(36)),
    Column("reason", String(50)),
    Column("created_at", String(32), nullable=False),
    Index("ix_revoked_tokens_expires_at", "expires_at"),
)

password_reset_tokens = Table(
    "password_reset_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("principal_id", Integer, ForeignKey("principals.id", ondelete="CASCADE"), nullable=False),
    Column("token", String(64), nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),
    Column("used_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Index("ix_password_reset_tokens_principal", "principal_id"),
)

invitation_tokens = Table(
    "invitation_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(36), nullable=False, unique=True),
    Column("created_by", Integer, ForeignKey("principals.id", ondelete="CASCADE"), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),
    Column("used_by", Integer, ForeignKey("principals.id", ondelete="SET NULL")),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(db_url: str) -> Engine:
    """Create the shared Engine and make sure every table exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _sqlite_pragmas)
    metadata.create_all(engine)
    return engine


def now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def to_iso(moment: datetime) -> str:
    """Normalise to a UTC ISO string with a fixed layout so string comparison orders correctly."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")
