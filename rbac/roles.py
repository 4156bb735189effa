"""
rbac/roles.py -- Role registry: creation, rename, deletion guard, lookup.

Role names are uppercase letters and underscores only (ADMIN, SUPPORT_TIER).
A role still held by any principal cannot be deleted.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy.exc import IntegrityError

from auth.models import Role
from core.errors import ConflictError, NotFoundError, ValidationError
from rbac.store import RBACStore

logger = logging.getLogger("gatekeeper.roles")

ROLE_NAME_RE = re.compile(r"^[A-Z_]+$")
_MAX_NAME_LENGTH = 50
_MAX_DESCRIPTION_LENGTH = 255


def validate_role_name(name: str) -> None:
    if not name or len(name) > _MAX_NAME_LENGTH or not ROLE_NAME_RE.match(name):
        raise ValidationError(
            "Role name must contain only uppercase letters and underscores.",
            code="invalid_role_name",
            detail=name,
        )


def _validate_description(description: str | None) -> None:
    if description is not None and len(description) > _MAX_DESCRIPTION_LENGTH:
        raise ValidationError("Role description is too long.", code="invalid_role_description")


class RoleRegistry:
    def __init__(self, store: RBACStore) -> None:
        self.store = store

    def register_role(self, name: str, description: str | None = None) -> Role:
        validate_role_name(name)
        _validate_description(description)
        if self.store.get_role_by_name(name) is not None:
            raise ConflictError(f"Role with name '{name}' already exists.")
        try:
            role = self.store.create_role(Role(name=name, description=description))
        except IntegrityError as exc:
            raise ConflictError(f"Role with name '{name}' already exists.") from exc
        logger.info("Role created: %s (id=%s)", role.name, role.id)
        return role

    def update_role(self, role_id: int, name: str, description: str | None = None) -> Role:
        validate_role_name(name)
        _validate_description(description)
        role = self.find_by_id(role_id)
        if self.store.role_name_taken(name, exclude_id=role_id):
            raise ConflictError(f"Role with name '{name}' already exists.")
        role.name = name
        if description is not None:
            role.description = description
        self.store.update_role(role)
        return role

    def delete_role(self, role_id: int) -> None:
        role = self.find_by_id(role_id)
        if self.store.count_principals_with_role(role_id) > 0:
            raise ConflictError("Cannot delete role that is assigned to users.", code="role_in_use")
        self.store.delete_role(role_id)
        logger.info("Role deleted: %s (id=%s)", role.name, role_id)

    def find_by_name(self, name: str) -> Role | None:
        return self.store.get_role_by_name(name)

    def find_by_id(self, role_id: int) -> Role:
        role = self.store.get_role(role_id)
        if role is None:
            raise NotFoundError("Role not found.", code="role_not_found", detail=str(role_id))
        return role

    def list_roles(self, page: int = 1, limit: int = 10, search: str | None = None) -> tuple[list[Role], int]:
        return self.store.list_roles(page, limit, search)
