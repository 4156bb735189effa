"""
rbac/graph.py -- Role/Permission Graph.

Owns the role_permissions join records and answers the two questions the
decision engine asks: "does role R hold permission P" and "does any of these
role names hold (method, action)".

is_authorized() short-circuits on an empty role list without a query, so
principals with no roles never cost a database round trip.
"""

from __future__ import annotations

import logging
from typing import Iterable

from auth.models import Permission, Role, RolePermission
from core.errors import NotFoundError
from rbac.store import RBACStore

logger = logging.getLogger("gatekeeper.graph")


class RolePermissionGraph:
    def __init__(self, store: RBACStore) -> None:
        self.store = store

    def grant(self, role: Role | int, permission: Permission | int) -> bool:
        """Idempotent. Returns True if a new grant was recorded."""
        role_id = _id_of(role)
        permission_id = _id_of(permission)
        created = self.store.grant(role_id, permission_id)
        if created:
            logger.info("Granted permission %s to role %s", permission_id, role_id)
        return created

    def revoke(self, role: Role | int, permission_ids: Iterable[int]) -> int:
        role_id = _id_of(role)
        removed = self.store.revoke(role_id, permission_ids)
        logger.info("Revoked %d permission(s) from role %s", removed, role_id)
        return removed

    def assign(self, role: Role | int, permission_ids: Iterable[int], replace: bool = False) -> int:
        """Add grants in one transaction; replace=True clears existing grants first.

        The role and every permission must exist (NotFoundError otherwise).
        The check runs before the transaction opens, so a bad id never
        touches the current grant set.
        """
        role_id = _id_of(role)
        ids = list(dict.fromkeys(permission_ids))
        if self.store.get_role(role_id) is None:
            raise NotFoundError("Role not found.", code="role_not_found", detail=str(role_id))
        found = {p.id for p in self.store.get_permissions(ids)}
        missing = [pid for pid in ids if pid not in found]
        if missing:
            raise NotFoundError(
                "Some permissions not found.",
                code="permission_not_found",
                detail=", ".join(str(pid) for pid in missing),
            )
        inserted = self.store.assign_permissions(role_id, ids, replace=replace)
        logger.info(
            "%s %d permission(s) on role %s (%d new)",
            "Replaced" if replace else "Assigned",
            len(ids),
            role_id,
            inserted,
        )
        return inserted

    def replace(self, role: Role | int, permission_ids: Iterable[int]) -> int:
        return self.assign(role, permission_ids, replace=True)

    def has_permission(self, role: Role | int, permission: Permission | int) -> bool:
        return self.store.has_permission(_id_of(role), _id_of(permission))

    def effective_permissions(self, role_names: Iterable[str]) -> list[Permission]:
        return self.store.effective_permissions(role_names)

    def is_authorized(self, role_names: Iterable[str], method: str, action: str) -> bool:
        names = list(role_names)
        if not names:
            return False
        return self.store.is_authorized(names, method.upper(), action)

    # ------------------------------------------------------------------
    # Listing / assignment records
    # ------------------------------------------------------------------

    def role_permissions(self, role_id: int, page: int = 1, limit: int = 10) -> tuple[list[Permission], int]:
        self._require_role(role_id)
        return self.store.role_permissions_page(role_id, page, limit)

    def permission_roles(self, permission_id: int, page: int = 1, limit: int = 10) -> tuple[list[Role], int]:
        if self.store.get_permission(permission_id) is None:
            raise NotFoundError("Permission not found.", detail=str(permission_id))
        return self.store.permission_roles_page(permission_id, page, limit)

    def get_assignment(self, assignment_id: int) -> RolePermission:
        assignment = self.store.get_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Role-permission assignment not found.", detail=str(assignment_id))
        return assignment

    def remove_assignment(self, assignment_id: int) -> None:
        if not self.store.remove_assignment(assignment_id):
            raise NotFoundError("Role-permission assignment not found.", detail=str(assignment_id))

    def _require_role(self, role_id: int) -> Role:
        role = self.store.get_role(role_id)
        if role is None:
            raise NotFoundError("Role not found.", code="role_not_found", detail=str(role_id))
        return role


def _id_of(entity) -> int:
    if isinstance(entity, int):
        return entity
    if entity.id is None:
        raise ValueError(f"{type(entity).__name__} has not been persisted.")
    return entity.id
