"""
rbac/bootstrap.py -- First-run seeding of the ADMIN role, admin user and admin permissions.

Idempotent; runs on every startup from the lifespan and from `main.py bootstrap`.

Steps:
  1. Ensure the ADMIN role exists.
  2. If DEFAULT_ADMIN_EMAIL is set and no principal has that email, create
     the admin principal and assign ADMIN to it.
  3. If ADMIN holds no permissions yet, register every entry of
     ADMIN_PERMISSIONS through the internal registration path (camelCase
     actions allowed) and grant it. A failing entry is logged and counted;
     the rest still go through.

Once ADMIN has at least one grant, step 3 is skipped, so permissions an
operator removed from ADMIN are not silently restored on restart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from auth.models import Principal
from auth.store import PrincipalStore
from auth.tokens import hash_password
from core.config import Settings
from core.errors import GatekeeperError
from rbac.assignments import RoleAssignments
from rbac.catalog import PermissionCatalog
from rbac.graph import RolePermissionGraph
from rbac.roles import RoleRegistry

logger = logging.getLogger("gatekeeper.bootstrap")

ADMIN_ROLE = "ADMIN"

# (method, route, action). Routes are stored without the /api/vN prefix.
ADMIN_PERMISSIONS: list[tuple[str, str, str]] = [
    # Users
    ("GET", "/users", "user:list"),
    ("GET", "/users/profile", "user:profile"),
    ("GET", "/users/:id", "user:detail"),
    # Roles
    ("GET", "/roles", "role:list"),
    ("GET", "/roles/:id", "role:detail"),
    ("POST", "/roles", "role:create"),
    ("PUT", "/roles/:id", "role:update"),
    ("DELETE", "/roles/:id", "role:delete"),
    # User roles
    ("POST", "/user-roles/assign", "userRole:assign"),
    ("DELETE", "/user-roles/:userId/:roleId", "userRole:remove"),
    ("GET", "/user-roles/user/:userId", "userRole:getUserRoles"),
    ("GET", "/user-roles/role/:roleId/users", "userRole:getRoleUsers"),
    ("GET", "/user-roles/check/:userId/:roleId", "userRole:checkUserRole"),
    ("GET", "/user-roles/role/:roleId/stats", "userRole:getRoleStats"),
    # Permissions
    ("GET", "/permissions", "permission:list"),
    ("GET", "/permissions/:id", "permission:detail"),
    ("GET", "/permissions/grouped", "permission:grouped"),
    ("GET", "/permissions/routes", "permission:routes"),
    ("GET", "/permissions/stats", "permission:stats"),
    ("GET", "/permissions/unused", "permission:unused"),
    ("GET", "/permissions/usage", "permission:usage"),
    ("GET", "/permissions/resolve", "permission:resolve"),
    ("POST", "/permissions/validate", "permission:validate"),
    ("POST", "/permissions", "permission:create"),
    # Role permissions
    ("GET", "/role-permissions/:roleId/permissions", "rolePermission:getRolePermissions"),
    ("GET", "/role-permissions/:roleId/permissions/effective", "rolePermission:getEffectivePermissions"),
    ("POST", "/role-permissions/:roleId/permissions", "rolePermission:assignPermissions"),
    ("DELETE", "/role-permissions/:roleId/permissions", "rolePermission:removePermissions"),
    ("PUT", "/role-permissions/:roleId/permissions", "rolePermission:replacePermissions"),
    ("GET", "/role-permissions/permissions/:permissionId/roles", "rolePermission:getPermissionRoles"),
    ("GET", "/role-permissions/:roleId/permissions/:permissionId/check", "rolePermission:checkPermission"),
    ("GET", "/role-permissions/:assignmentId", "rolePermission:getAssignment"),
    ("DELETE", "/role-permissions/:assignmentId", "rolePermission:removeAssignment"),
    # Invitations
    ("POST", "/invitation-tokens", "invitationToken:create"),
    ("GET", "/invitation-tokens", "invitationToken:list"),
]


@dataclass
class BootstrapReport:
    role_created: bool = False
    admin_created: bool = False
    granted: int = 0
    errors: int = 0


def bootstrap_admin(
    settings: Settings,
    roles: RoleRegistry,
    principals: PrincipalStore,
    assignments: RoleAssignments,
    catalog: PermissionCatalog,
    graph: RolePermissionGraph,
) -> BootstrapReport:
    report = BootstrapReport()

    admin_role = roles.find_by_name(ADMIN_ROLE)
    if admin_role is None:
        admin_role = roles.register_role(ADMIN_ROLE, "Administrator")
        report.role_created = True
        logger.info("ADMIN role created (id=%s)", admin_role.id)

    email = settings.default_admin_email.strip().lower()
    if email and principals.find_by_email(email) is None:
        if not settings.default_admin_password:
            logger.warning("DEFAULT_ADMIN_EMAIL is set but DEFAULT_ADMIN_PASSWORD is empty; skipping admin user")
        else:
            admin = principals.create(
                Principal(
                    email=email,
                    first_name="Admin",
                    last_name="User",
                    hashed_password=hash_password(settings.default_admin_password),
                )
            )
            assignments.assign_role(admin.external_id, admin_role.id)
            report.admin_created = True
            logger.info("Default admin user created: %s", email)

    existing, _ = graph.role_permissions(admin_role.id, page=1, limit=1)
    if existing:
        logger.info("ADMIN role already has permissions, skipping permission grant")
        return report

    for method, route, action in ADMIN_PERMISSIONS:
        try:
            permission = catalog.register_permission(method, route, action, internal=True)
            graph.grant(admin_role, permission)
            report.granted += 1
        except (GatekeeperError, SQLAlchemyError) as exc:
            report.errors += 1
            logger.error("Failed to grant %s %s (%s) to ADMIN: %s", method, route, action, exc)

    logger.info(
        "Admin bootstrap complete: %d of %d permission(s) granted, %d error(s)",
        report.granted,
        len(ADMIN_PERMISSIONS),
        report.errors,
    )
    return report
