"""
auth/models.py -- Domain dataclasses for authentication and RBAC entities.

Pattern: Data class (pure data container, zero logic). Stores map rows to
these; services and routes do the work.

Layer rule: no imports from api/, rbac/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Principal:
    """An authenticated identity.

    external_id is the opaque UUID handed out in tokens and API responses and
    never changes. id is the storage identity and never leaves the process.

    roles holds role names ordered by assignment time. The store fills it in
    on every read so token issuance and the role-drift check see the same view.
    """

    email: str
    first_name: str = ""
    last_name: str = ""
    external_id: str = ""
    id: int | None = None
    hashed_password: str | None = None
    is_active: bool = True
    roles: list[str] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Role:
    name: str  # ^[A-Z_]+$
    description: str | None = None
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Permission:
    """A (method, route pattern, action) triple.

    route may contain ":param" segments that match any single path segment.
    action is "module:operation" shaped.
    """

    method: str
    route: str
    action: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def module(self) -> str:
        return self.action.split(":", 1)[0] or "unknown"


@dataclass
class RolePermission:
    role_id: int
    permission_id: int
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class PrincipalRole:
    principal_id: int
    role_id: int
    role_name: str = ""
    assigned_by: int | None = None
    id: int | None = None
    assigned_at: str | None = None


@dataclass
class RevokedToken:
    """A blacklist entry. token_hash is HMAC-SHA256(SECRET_KEY, token)."""

    token_hash: str
    expires_at: str  # ISO 8601
    principal_external_id: str | None = None
    reason: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass
class PasswordResetToken:
    """Single-use reset token. used=True is permanent regardless of expiry."""

    principal_id: int
    token: str
    expires_at: str
    used: bool = False
    used_at: str | None = None
    id: int | None = None


@dataclass
class InvitationToken:
    token: str
    created_by: int
    expires_at: str
    used: bool = False
    used_by: int | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_in: int
    refresh_expires_in: int


@dataclass
class Claims:
    """Decoded payload of a verified token."""

    sub: str
    type: str  # "access" | "refresh"
    exp: int
    iat: int | None = None
    jti: str | None = None
    email: str | None = None
    roles: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict) -> Claims:
        return cls(
            sub=str(payload["sub"]),
            type=payload.get("type", ""),
            exp=int(payload["exp"]),
            iat=payload.get("iat"),
            jti=payload.get("jti"),
            email=payload.get("email"),
            roles=list(payload.get("roles") or []),
        )
