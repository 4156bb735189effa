"""Unit tests for rbac/assignments.py -- principal <-> role assignments.

Covers:
- assign is idempotent and records the assigner
- unknown principal / role raise NotFoundError
- principal reads reflect assignment changes (the roles list token issuance uses)
- per-role listings and stats
"""

import pytest

from auth.models import Principal
from core.errors import NotFoundError


@pytest.fixture
def people(bare_container):
    c = bare_container
    support = c.roles.register_role("SUPPORT")
    billing = c.roles.register_role("BILLING")
    alice = c.principals.create(Principal(email="alice@example.com", first_name="Alice"))
    bob = c.principals.create(Principal(email="bob@example.com", first_name="Bob"))
    return c, support, billing, alice, bob


def test_assign_is_idempotent(people):
    c, support, _, alice, bob = people
    first = c.assignments.assign_role(alice.external_id, support.id, assigned_by=bob.external_id)
    second = c.assignments.assign_role(alice.external_id, support.id)
    assert first.id == second.id
    assert first.role_name == "SUPPORT"
    assert first.assigned_by == bob.id
    assert len(c.assignments.roles_for(alice.external_id)) == 1


def test_assign_unknown_principal_or_role(people):
    c, support, _, alice, _ = people
    with pytest.raises(NotFoundError) as exc_info:
        c.assignments.assign_role("no-such-user", support.id)
    assert exc_info.value.code == "user_not_found"
    with pytest.raises(NotFoundError) as exc_info:
        c.assignments.assign_role(alice.external_id, 999)
    assert exc_info.value.code == "role_not_found"


def test_principal_roles_follow_assignments(people):
    c, support, billing, alice, _ = people
    c.assignments.assign_role(alice.external_id, support.id)
    c.assignments.assign_role(alice.external_id, billing.id)
    assert c.principals.find_by_external_id(alice.external_id).roles == ["SUPPORT", "BILLING"]

    assert c.assignments.remove_role(alice.external_id, support.id) is True
    assert c.assignments.remove_role(alice.external_id, support.id) is False
    assert c.principals.find_by_external_id(alice.external_id).roles == ["BILLING"]


def test_remove_for_unknown_principal(people):
    c, support, _, _, _ = people
    assert c.assignments.remove_role("no-such-user", support.id) is False
    assert c.assignments.roles_for("no-such-user") == []
    assert c.assignments.user_has_role("no-such-user", support.id) is False


def test_user_has_role(people):
    c, support, billing, alice, _ = people
    c.assignments.assign_role(alice.external_id, support.id)
    assert c.assignments.user_has_role(alice.external_id, support.id)
    assert not c.assignments.user_has_role(alice.external_id, billing.id)


def test_role_users_and_stats(people):
    c, support, _, alice, bob = people
    c.assignments.assign_role(alice.external_id, support.id)
    c.assignments.assign_role(bob.external_id, support.id)
    bob.is_active = False
    c.principals.save(bob)

    users, total = c.assignments.role_users(support.id)
    assert total == 2
    assert {u.email for u in users} == {"alice@example.com", "bob@example.com"}
    assert c.assignments.role_stats(support.id) == {"total_users": 2, "active_users": 1}

    with pytest.raises(NotFoundError):
        c.assignments.role_users(999)
    with pytest.raises(NotFoundError):
        c.assignments.role_stats(999)
