"""Unit tests for rbac/graph.py -- role/permission grants and the authorization query."""

from unittest.mock import MagicMock

import pytest

from core.errors import NotFoundError
from rbac import store as rbac_store
from rbac.graph import RolePermissionGraph


@pytest.fixture
def seeded(bare_container):
    """Two roles and three permissions, no grants."""
    c = bare_container
    support = c.roles.register_role("SUPPORT")
    billing = c.roles.register_role("BILLING")
    list_users = c.catalog.register_permission("GET", "/api/v1/users", "user:list")
    view_user = c.catalog.register_permission("GET", "/api/v1/users/:id", "user:detail")
    delete_user = c.catalog.register_permission("DELETE", "/api/v1/users/:id", "user:delete")
    return c, support, billing, (list_users, view_user, delete_user)


def test_grant_is_idempotent(seeded):
    c, support, _, (list_users, _, _) = seeded
    assert c.graph.grant(support, list_users) is True
    assert c.graph.grant(support, list_users) is False
    assert c.graph.has_permission(support, list_users)
    _, total = c.graph.role_permissions(support.id)
    assert total == 1


def test_is_authorized_matches_method_and_action(seeded):
    c, support, billing, (list_users, _, delete_user) = seeded
    c.graph.grant(support, list_users)
    c.graph.grant(billing, delete_user)

    assert c.graph.is_authorized(["SUPPORT"], "GET", "user:list")
    assert c.graph.is_authorized(["BILLING", "SUPPORT"], "get", "user:list")
    assert not c.graph.is_authorized(["SUPPORT"], "POST", "user:list")
    assert not c.graph.is_authorized(["SUPPORT"], "DELETE", "user:delete")
    assert not c.graph.is_authorized(["NOBODY"], "GET", "user:list")


def test_is_authorized_with_no_roles_skips_store():
    store = MagicMock()
    graph = RolePermissionGraph(store)
    assert graph.is_authorized([], "GET", "user:list") is False
    store.is_authorized.assert_not_called()


def test_assign_skips_existing_grants(seeded):
    c, support, _, (list_users, view_user, _) = seeded
    c.graph.grant(support, list_users)
    assert c.graph.assign(support, [list_users.id, view_user.id, view_user.id]) == 1
    names = sorted(p.action for p in c.graph.effective_permissions(["SUPPORT"]))
    assert names == ["user:detail", "user:list"]


def test_assign_with_unknown_permission_changes_nothing(seeded):
    c, support, _, (list_users, view_user, _) = seeded
    c.graph.grant(support, list_users)
    with pytest.raises(NotFoundError) as exc_info:
        c.graph.replace(support, [view_user.id, 999])
    assert exc_info.value.code == "permission_not_found"
    assert [p.action for p in c.graph.effective_permissions(["SUPPORT"])] == ["user:list"]


def test_assign_unknown_role(seeded):
    c, _, _, (list_users, _, _) = seeded
    with pytest.raises(NotFoundError) as exc_info:
        c.graph.assign(999, [list_users.id])
    assert exc_info.value.code == "role_not_found"


def test_replace_swaps_the_grant_set(seeded):
    c, support, _, (list_users, view_user, delete_user) = seeded
    c.graph.assign(support, [list_users.id, view_user.id])
    c.graph.replace(support, [delete_user.id])

    assert [p.action for p in c.graph.effective_permissions(["SUPPORT"])] == ["user:delete"]
    assert not c.graph.is_authorized(["SUPPORT"], "GET", "user:list")
    assert c.graph.is_authorized(["SUPPORT"], "DELETE", "user:delete")


def test_replace_failure_keeps_the_previous_grants(seeded, monkeypatch):
    c, support, _, (list_users, view_user, delete_user) = seeded
    c.graph.assign(support, [list_users.id, view_user.id])
    real_grant = rbac_store._grant

    def failing_grant(conn, role_id, permission_id):
        if permission_id == view_user.id:
            raise RuntimeError("disk full")
        return real_grant(conn, role_id, permission_id)

    monkeypatch.setattr(rbac_store, "_grant", failing_grant)
    # Existing grants are cleared and delete_user is added before the failure.
    with pytest.raises(RuntimeError):
        c.graph.replace(support, [delete_user.id, view_user.id])

    assert sorted(p.action for p in c.graph.effective_permissions(["SUPPORT"])) == ["user:detail", "user:list"]
    assert not c.graph.has_permission(support, delete_user)


def test_revoke(seeded):
    c, support, _, (list_users, view_user, _) = seeded
    c.graph.assign(support, [list_users.id, view_user.id])
    assert c.graph.revoke(support, [list_users.id, 999]) == 1
    assert not c.graph.has_permission(support, list_users)
    assert c.graph.has_permission(support, view_user)


def test_effective_permissions_are_deduplicated(seeded):
    c, support, billing, (list_users, _, _) = seeded
    c.graph.grant(support, list_users)
    c.graph.grant(billing, list_users)
    assert len(c.graph.effective_permissions(["SUPPORT", "BILLING"])) == 1
    assert c.graph.effective_permissions([]) == []


def test_permission_roles(seeded):
    c, support, billing, (list_users, _, _) = seeded
    c.graph.grant(support, list_users)
    c.graph.grant(billing, list_users)
    roles, total = c.graph.permission_roles(list_users.id)
    assert total == 2
    assert {r.name for r in roles} == {"SUPPORT", "BILLING"}
    with pytest.raises(NotFoundError):
        c.graph.permission_roles(999)


def test_assignment_records(seeded):
    c, support, _, (list_users, _, _) = seeded
    c.graph.grant(support, list_users)
    # First grant in a fresh database.
    record = c.graph.get_assignment(1)
    assert (record.role_id, record.permission_id) == (support.id, list_users.id)

    c.graph.remove_assignment(1)
    assert not c.graph.has_permission(support, list_users)
    with pytest.raises(NotFoundError):
        c.graph.get_assignment(1)
    with pytest.raises(NotFoundError):
        c.graph.remove_assignment(1)
