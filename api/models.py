"""
API request and response models for Gatekeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Principals are exposed by external_id only (as "id"); the internal integer
id never appears in a response.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import InvitationToken, Permission, Principal, PrincipalRole, Role, RolePermission

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain part.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt only looks at the first 72 bytes.
_PASSWORD_MIN = 8
_PASSWORD_MAX = 72

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class Page(BaseModel, Generic[T]):
    """One page of a list endpoint."""

    items: list[T]
    total: int
    page: int
    limit: int


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    invitation_token is required only when REGISTRATION_MODE=invitation; the
    service decides, not the model.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    invitation_token: Optional[str] = Field(default=None, max_length=64)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str
    last_name: str
    is_active: bool
    roles: list[str]
    created_at: Optional[str] = None

    @classmethod
    def from_principal(cls, principal: Principal) -> "UserResponse":
        return cls(
            id=principal.external_id,
            email=principal.email,
            first_name=principal.first_name,
            last_name=principal.last_name,
            is_active=principal.is_active,
            roles=list(principal.roles),
            created_at=principal.created_at,
        )


class TokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int
    refresh_expires_in: int


class LoginResponse(TokenResponse):
    user: UserResponse


class MeResponse(BaseModel):
    """Identity as carried by the verified access token."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str]
    roles: list[str]
    expires_at: int


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    # Format (uppercase letters and underscores) is checked by RoleRegistry.
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=255)


class RoleUpdate(RoleCreate):
    pass


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            created_at=role.created_at,
            updated_at=role.updated_at,
        )


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionCreate(BaseModel):
    """Request body for POST /api/v1/permissions and /permissions/validate.

    Format rules (method enum, /api/vN prefix, module:operation action) are
    enforced by the catalog so both endpoints report the same errors.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    method: str = Field(min_length=1, max_length=10)
    route: str = Field(min_length=1, max_length=255)
    action: str = Field(min_length=1, max_length=100)

    @field_validator("method")
    @classmethod
    def upper_method(cls, value: str) -> str:
        return value.upper()


class PermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    method: str
    route: str
    action: str
    module: str
    created_at: Optional[str] = None

    @classmethod
    def from_permission(cls, permission: Permission) -> "PermissionResponse":
        return cls(
            id=permission.id,
            method=permission.method,
            route=permission.route,
            action=permission.action,
            module=permission.module,
            created_at=permission.created_at,
        )


class PermissionValidateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    errors: list[str] = Field(default_factory=list)
    exists: bool = False


class PermissionGroup(BaseModel):
    module: str
    count: int
    permissions: list[PermissionResponse]


class RouteInfo(BaseModel):
    route: str
    method: str
    action: str
    description: str
    roles: list[str]


class UsageRow(BaseModel):
    action: str
    count: int


class PermissionStats(BaseModel):
    total_permissions: int
    permissions_by_method: dict[str, int]
    permissions_by_module: dict[str, int]
    unused_permissions: int
    most_used_permissions: list[UsageRow]
    least_used_permissions: list[UsageRow]


class ResolveResponse(BaseModel):
    """Response for GET /api/v1/permissions/resolve."""

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    action: str
    registered: bool


# ---------------------------------------------------------------------------
# Role permissions
# ---------------------------------------------------------------------------


class PermissionIdsRequest(BaseModel):
    permission_ids: list[int] = Field(min_length=1, max_length=500)


class AssignPermissionsResponse(BaseModel):
    role_id: int
    requested: int
    assigned: int


class RolePermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    role_id: int
    permission_id: int
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: RolePermission) -> "RolePermissionResponse":
        return cls(
            id=record.id,
            role_id=record.role_id,
            permission_id=record.permission_id,
            created_at=record.created_at,
        )


class PermissionCheckResponse(BaseModel):
    role_id: int
    permission_id: int
    has_permission: bool


# ---------------------------------------------------------------------------
# User roles
# ---------------------------------------------------------------------------


class AssignRoleRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    role_id: int = Field(ge=1)


class UserRoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    role_id: int
    role_name: str
    assigned_at: Optional[str] = None

    @classmethod
    def from_assignment(cls, assignment: PrincipalRole, user_id: str) -> "UserRoleResponse":
        return cls(
            id=assignment.id,
            user_id=user_id,
            role_id=assignment.role_id,
            role_name=assignment.role_name,
            assigned_at=assignment.assigned_at,
        )


class UserRoleCheckResponse(BaseModel):
    user_id: str
    role_id: int
    has_role: bool


class RoleStatsResponse(BaseModel):
    role_id: int
    total_users: int
    active_users: int


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


class InvitationCreate(BaseModel):
    expires_in_hours: int = Field(default=24, ge=1, le=24 * 30)


class InvitationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    token: str
    expires_at: str
    used: bool
    created_at: Optional[str] = None

    @classmethod
    def from_invitation(cls, invitation: InvitationToken) -> "InvitationResponse":
        return cls(
            id=invitation.id,
            token=invitation.token,
            expires_at=invitation.expires_at,
            used=invitation.used,
            created_at=invitation.created_at,
        )
