"""
auth/store.py -- SQLAlchemy Core persistence for principals and token records.

Pattern: Repository + Data Mapper (same as rbac/store.py).
PrincipalStore, TokenStore and InvitationStore are the repositories;
_row_to_* functions are the mappers. Services never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  revoked_tokens stores HMAC-SHA256 hashes, never raw tokens.

The Engine is built once by db.schema.make_engine() and shared by every store
so the RBAC join queries and the principal queries see the same database.

Layer rule: no imports from api/, rbac/, or cache/.
"""

from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.models import InvitationToken, PasswordResetToken, Principal, RevokedToken
from db.schema import (
    invitation_tokens,
    now_iso,
    password_reset_tokens,
    principal_roles,
    principals,
    revoked_tokens,
    roles,
)

# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------


class PrincipalStore:
    """Repository for Principal records.

    Usage:
        store = PrincipalStore(engine)
        p = store.create(Principal(email="a@example.com", hashed_password=hash_password("secret")))
        store.find_by_external_id(p.external_id)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, principal: Principal) -> Principal:
        """Insert a principal and return it with id, external_id and created_at set.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers translate that into a ConflictError.
        """
        external_id = principal.external_id or str(uuid.uuid4())
        created_at = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                principals.insert().values(
                    external_id=external_id,
                    email=principal.email,
                    first_name=principal.first_name,
                    last_name=principal.last_name,
                    hashed_password=principal.hashed_password,
                    is_active=1 if principal.is_active else 0,
                    created_at=created_at,
                )
            )
            principal_id = result.inserted_primary_key[0]
        principal.id = principal_id
        principal.external_id = external_id
        principal.created_at = created_at
        principal.roles = []
        return principal

    def save(self, principal: Principal) -> None:
        """Persist the mutable fields of an existing principal. external_id is immutable."""
        if principal.id is None:
            raise ValueError("Cannot save a principal that has not been created.")
        principal.updated_at = now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                principals.update()
                .where(principals.c.id == principal.id)
                .values(
                    email=principal.email,
                    first_name=principal.first_name,
                    last_name=principal.last_name,
                    hashed_password=principal.hashed_password,
                    is_active=1 if principal.is_active else 0,
                    updated_at=principal.updated_at,
                )
            )

    def delete(self, principal_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(principals.delete().where(principals.c.id == principal_id))
        return result.rowcount > 0

    def find_by_external_id(self, external_id: str) -> Principal | None:
        return self._find_one(principals.c.external_id == external_id)

    def find_by_email(self, email: str) -> Principal | None:
        """Exact email match. Returns None if not found."""
        return self._find_one(principals.c.email == email)

    def get_by_id(self, principal_id: int) -> Principal | None:
        return self._find_one(principals.c.id == principal_id)

    def list_principals(self, page: int = 1, limit: int = 10) -> tuple[list[Principal], int]:
        """Return one page of principals ordered by creation time, plus the total count."""
        offset = (page - 1) * limit
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(principals)).scalar() or 0
            rows = conn.execute(
                principals.select().order_by(principals.c.created_at, principals.c.id).offset(offset).limit(limit)
            ).fetchall()
            return [_row_to_principal(r, _role_names(conn, r.id)) for r in rows], total

    def has_principals(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(principals)).scalar()
        return (result or 0) > 0

    def _find_one(self, clause) -> Principal | None:
        with self.engine.connect() as conn:
            row = conn.execute(principals.select().where(clause)).fetchone()
            if row is None:
                return None
            return _row_to_principal(row, _role_names(conn, row.id))


def _role_names(conn: Connection, principal_id: int) -> list[str]:
    rows = conn.execute(
        select(roles.c.name)
        .select_from(principal_roles.join(roles, principal_roles.c.role_id == roles.c.id))
        .where(principal_roles.c.principal_id == principal_id)
        .order_by(principal_roles.c.assigned_at, principal_roles.c.id)
    ).fetchall()
    return [r.name for r in rows]


# ---------------------------------------------------------------------------
# Revoked tokens and password reset tokens
# ---------------------------------------------------------------------------


class TokenStore:
    """Repository for the token blacklist and password reset tokens."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def add_revoked(self, record: RevokedToken) -> bool:
        """Insert a blacklist entry. Returns False when the token was already revoked.

        Two concurrent logouts of the same token race on the UNIQUE index; the
        loser's IntegrityError means the token is already blacklisted, which is
        the outcome both callers wanted.
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    revoked_tokens.insert().values(
                        token_hash=record.token_hash,
                        expires_at=record.expires_at,
                        principal_external_id=record.principal_external_id,
                        reason=record.reason,
                        created_at=now_iso(),
                    )
                )
        except IntegrityError:
            return False
        return True

    def is_revoked(self, token_hash: str) -> bool:
        """Existence check by hash. O(1) via the UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(revoked_tokens.c.id).where(revoked_tokens.c.token_hash == token_hash)
            ).fetchone()
        return row is not None

    def purge_expired_revoked(self, now: str | None = None) -> int:
        """Delete blacklist rows whose natural expiry has passed. Returns rows removed."""
        cutoff = now or now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(revoked_tokens.delete().where(revoked_tokens.c.expires_at < cutoff))
        return result.rowcount

    def create_reset_token(self, record: PasswordResetToken) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                password_reset_tokens.insert().values(
                    principal_id=record.principal_id,
                    token=record.token,
                    expires_at=record.expires_at,
                    used=0,
                    created_at=now_iso(),
                )
            )
        return result.inserted_primary_key[0]

    def get_unused_reset_token(self, token: str) -> PasswordResetToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                password_reset_tokens.select().where(
                    (password_reset_tokens.c.token == token) & (password_reset_tokens.c.used == 0)
                )
            ).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def mark_reset_token_used(self, token_id: int) -> bool:
        """Flip used=1 only if still unused. False means another request consumed it first."""
        with self.engine.begin() as conn:
            result = conn.execute(
                password_reset_tokens.update()
                .where((password_reset_tokens.c.id == token_id) & (password_reset_tokens.c.used == 0))
                .values(used=1, used_at=now_iso())
            )
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Invitation tokens
# ---------------------------------------------------------------------------


class InvitationStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, invitation: InvitationToken) -> InvitationToken:
        created_at = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                invitation_tokens.insert().values(
                    token=invitation.token,
                    created_by=invitation.created_by,
                    expires_at=invitation.expires_at,
                    used=0,
                    created_at=created_at,
                )
            )
        invitation.id = result.inserted_primary_key[0]
        invitation.created_at = created_at
        return invitation

    def get_unused(self, token: str) -> InvitationToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                invitation_tokens.select().where((invitation_tokens.c.token == token) & (invitation_tokens.c.used == 0))
            ).fetchone()
        return _row_to_invitation(row) if row is not None else None

    def mark_used(self, invitation_id: int, used_by: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                invitation_tokens.update()
                .where((invitation_tokens.c.id == invitation_id) & (invitation_tokens.c.used == 0))
                .values(used=1, used_by=used_by)
            )
        return result.rowcount > 0

    def list_all(self) -> list[InvitationToken]:
        with self.engine.connect() as conn:
            rows = conn.execute(invitation_tokens.select().order_by(invitation_tokens.c.created_at.desc())).fetchall()
        return [_row_to_invitation(r) for r in rows]

    def purge_expired(self, now: str | None = None) -> int:
        cutoff = now or now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(invitation_tokens.delete().where(invitation_tokens.c.expires_at < cutoff))
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_principal(row, role_names: list[str]) -> Principal:
    return Principal(
        id=row.id,
        external_id=row.external_id,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        hashed_password=row.hashed_password,
        is_active=bool(row.is_active),
        roles=role_names,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_reset_token(row) -> PasswordResetToken:
    return PasswordResetToken(
        id=row.id,
        principal_id=row.principal_id,
        token=row.token,
        expires_at=row.expires_at,
        used=bool(row.used),
        used_at=row.used_at,
    )


def _row_to_invitation(row) -> InvitationToken:
    return InvitationToken(
        id=row.id,
        token=row.token,
        created_by=row.created_by,
        expires_at=row.expires_at,
        used=bool(row.used),
        used_by=row.used_by,
        created_at=row.created_at,
    )
