"""
rbac/assignments.py -- Principal <-> Role assignments.

Principals are addressed by external_id everywhere outside the stores; the
internal id is looked up here and never returned to callers.

Changing a principal's roles invalidates every access token issued before
the change: the token service compares the role set embedded in the token
against the current assignments on every verify.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import Principal, PrincipalRole
from auth.store import PrincipalStore
from core.errors import NotFoundError
from rbac.store import RBACStore

logger = logging.getLogger("gatekeeper.assignments")


class RoleAssignments:
    def __init__(self, store: RBACStore, principals: PrincipalStore) -> None:
        self.store = store
        self.principals = principals

    def assign_role(self, external_id: str, role_id: int, assigned_by: str | None = None) -> PrincipalRole:
        """Idempotent: returns the existing assignment if the principal already holds the role."""
        principal = self._require_principal(external_id)
        if self.store.get_role(role_id) is None:
            raise NotFoundError("Role not found.", code="role_not_found", detail=str(role_id))

        existing = self.store.get_principal_role(principal.id, role_id)
        if existing is not None:
            return existing

        assigner_id = None
        if assigned_by:
            assigner = self.principals.find_by_external_id(assigned_by)
            assigner_id = assigner.id if assigner is not None else None
        try:
            assignment = self.store.add_principal_role(principal.id, role_id, assigned_by=assigner_id)
        except IntegrityError:
            assignment = self.store.get_principal_role(principal.id, role_id)
            if assignment is None:
                raise
            return assignment
        logger.info("Role %s assigned to principal %s", assignment.role_name, external_id)
        return assignment

    def remove_role(self, external_id: str, role_id: int) -> bool:
        principal = self.principals.find_by_external_id(external_id)
        if principal is None:
            return False
        removed = self.store.remove_principal_role(principal.id, role_id)
        if removed:
            logger.info("Role %s removed from principal %s", role_id, external_id)
        return removed

    def roles_for(self, external_id: str) -> list[PrincipalRole]:
        principal = self.principals.find_by_external_id(external_id)
        if principal is None:
            return []
        return self.store.principal_role_assignments(principal.id)

    def role_users(self, role_id: int, page: int = 1, limit: int = 10) -> tuple[list[Principal], int]:
        if self.store.get_role(role_id) is None:
            raise NotFoundError("Role not found.", code="role_not_found", detail=str(role_id))
        ids, total = self.store.role_principal_ids(role_id, page, limit)
        users = [p for p in (self.principals.get_by_id(pid) for pid in ids) if p is not None]
        return users, total

    def user_has_role(self, external_id: str, role_id: int) -> bool:
        principal = self.principals.find_by_external_id(external_id)
        if principal is None:
            return False
        return self.store.get_principal_role(principal.id, role_id) is not None

    def role_stats(self, role_id: int) -> dict:
        if self.store.get_role(role_id) is None:
            raise NotFoundError("Role not found.", code="role_not_found", detail=str(role_id))
        total, active = self.store.role_stats(role_id)
        return {"total_users": total, "active_users": active}

    def _require_principal(self, external_id: str) -> Principal:
        principal = self.principals.find_by_external_id(external_id)
        if principal is None:
            raise NotFoundError("User not found.", code="user_not_found", detail=external_id)
        return principal
