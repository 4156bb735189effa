"""Unit tests for rbac/roles.py -- role naming rules, uniqueness and the deletion guard."""

import pytest

from auth.models import Principal
from core.errors import ConflictError, NotFoundError, ValidationError
from rbac.roles import validate_role_name


@pytest.mark.parametrize("name", ["ADMIN", "SUPPORT_TIER", "_", "A" * 50])
def test_valid_role_names(name):
    validate_role_name(name)


@pytest.mark.parametrize("name", ["", "admin", "Admin", "ADMIN-1", "SUPPORT L2", "ADMIN2", "A" * 51])
def test_invalid_role_names(name):
    with pytest.raises(ValidationError) as exc_info:
        validate_role_name(name)
    assert exc_info.value.code == "invalid_role_name"
    assert exc_info.value.status_code == 400


def test_register_and_find(bare_container):
    roles = bare_container.roles
    role = roles.register_role("SUPPORT", "Helpdesk staff")
    assert role.id is not None
    assert roles.find_by_name("SUPPORT").id == role.id
    assert roles.find_by_id(role.id).description == "Helpdesk staff"
    assert roles.find_by_name("MISSING") is None


def test_duplicate_name_conflicts(bare_container):
    bare_container.roles.register_role("SUPPORT")
    with pytest.raises(ConflictError):
        bare_container.roles.register_role("SUPPORT")


def test_update_role(bare_container):
    roles = bare_container.roles
    support = roles.register_role("SUPPORT", "Helpdesk")
    roles.register_role("BILLING")

    updated = roles.update_role(support.id, "SUPPORT_TIER")
    assert updated.name == "SUPPORT_TIER"
    assert updated.description == "Helpdesk"
    # Renaming to its own name is not a conflict.
    roles.update_role(support.id, "SUPPORT_TIER", "Tier one")

    with pytest.raises(ConflictError):
        roles.update_role(support.id, "BILLING")
    with pytest.raises(ValidationError):
        roles.update_role(support.id, "lowercase")
    with pytest.raises(NotFoundError):
        roles.update_role(999, "GHOST")


def test_delete_unassigned_role(bare_container):
    roles = bare_container.roles
    role = roles.register_role("TEMP")
    roles.delete_role(role.id)
    with pytest.raises(NotFoundError):
        roles.find_by_id(role.id)


def test_delete_assigned_role_is_refused(bare_container):
    c = bare_container
    role = c.roles.register_role("SUPPORT")
    principal = c.principals.create(Principal(email="sam@example.com"))
    c.assignments.assign_role(principal.external_id, role.id)

    with pytest.raises(ConflictError) as exc_info:
        c.roles.delete_role(role.id)
    assert exc_info.value.code == "role_in_use"

    c.assignments.remove_role(principal.external_id, role.id)
    c.roles.delete_role(role.id)


def test_list_roles_search(bare_container):
    roles = bare_container.roles
    for name in ("SUPPORT", "SUPPORT_TIER", "BILLING"):
        roles.register_role(name)
    found, total = roles.list_roles(search="SUPP")
    assert total == 2
    assert {r.name for r in found} == {"SUPPORT", "SUPPORT_TIER"}
    page, total = roles.list_roles(page=2, limit=2)
    assert total == 3
    assert len(page) == 1
