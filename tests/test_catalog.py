"""Unit tests for rbac/catalog.py -- permission registration and route resolution.

Covers:
- register/resolve round trip, including the /api/vN prefix being stripped on store
- ":param" segments match exactly one path segment; segment counts must agree
- overlapping patterns resolve to the most literal one, independent of insertion order
- action format rules for the public and internal registration paths
- the action cache is invalidated when a permission is registered for the method
- reporting helpers (grouped, unused, usage, stats) over a bootstrapped catalog
"""

import pytest

from core.errors import ConflictError, NotFoundError, ValidationError
from rbac.bootstrap import ADMIN_PERMISSIONS
from rbac.catalog import (
    describe_route,
    literal_segment_count,
    matches_route_pattern,
    normalize_route,
    validate_action,
)

# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "route, expected",
    [
        ("/api/v1/users", "/users"),
        ("/api/v2/users/:id", "/users/:id"),
        ("/api/v1", "/"),
        ("/users", "/users"),
        ("/api/version/users", "/api/version/users"),
    ],
)
def test_normalize_route(route, expected):
    assert normalize_route(route) == expected


def test_pattern_param_matches_single_segment():
    pattern = "/role-permissions/:roleId/permissions"
    assert matches_route_pattern("/role-permissions/5/permissions", pattern)
    assert matches_route_pattern("role-permissions/5/permissions/", pattern)
    assert not matches_route_pattern("/role-permissions/5", pattern)
    assert not matches_route_pattern("/role-permissions/5/6/permissions", pattern)
    assert not matches_route_pattern("/role-permissions/5/grants", pattern)


def test_literal_segment_count():
    assert literal_segment_count("/users/:id") == 1
    assert literal_segment_count("/users/profile") == 2
    assert literal_segment_count("/user-roles/:userId/:roleId") == 1


@pytest.mark.parametrize("action", ["user:list", "permission:create", "a:b"])
def test_public_action_accepted(action):
    validate_action(action)


@pytest.mark.parametrize(
    "action",
    ["", "user", "user:list:extra", "User:list", "user:List", "user-list", "user_role:list", "user:", ":list", "x" * 101],
)
def test_public_action_rejected(action):
    with pytest.raises(ValidationError) as exc_info:
        validate_action(action)
    assert exc_info.value.code == "invalid_action"


def test_internal_action_allows_camel_case():
    validate_action("userRole:getUserRoles", internal=True)
    with pytest.raises(ValidationError):
        validate_action("userRole:getUserRoles")
    with pytest.raises(ValidationError):
        validate_action("UserRole:get", internal=True)


def test_describe_route():
    assert describe_route("GET", "user:list") == "Retrieve user data"
    assert describe_route("POST", "role:create") == "Create new role"
    assert describe_route("PATCH", "role:update") == "Update role data"
    assert describe_route("DELETE", "role:delete") == "Delete role"
    assert describe_route("HEAD", "user:head") == "HEAD operation on user"


# ---------------------------------------------------------------------------
# Registration and resolution
# ---------------------------------------------------------------------------


def test_register_and_resolve_exact(bare_container):
    catalog = bare_container.catalog
    permission = catalog.register_permission("get", "/api/v1/reports", "report:list")
    assert permission.method == "GET"
    assert permission.route == "/reports"
    assert catalog.resolve_action("GET", "/reports") == "report:list"
    assert catalog.resolve_action("POST", "/reports") is None


def test_register_is_idempotent(bare_container):
    catalog = bare_container.catalog
    first = catalog.register_permission("GET", "/api/v1/reports", "report:list")
    second = catalog.register_permission("GET", "/api/v1/reports", "report:list")
    assert first.id == second.id


def test_create_or_fail_conflicts_on_identical_triple(bare_container):
    catalog = bare_container.catalog
    catalog.create_or_fail("GET", "/api/v1/reports", "report:list")
    with pytest.raises(ConflictError):
        catalog.create_or_fail("GET", "/api/v1/reports", "report:list")
    # Same route under another version prefix is the same stored triple.
    with pytest.raises(ConflictError):
        catalog.create_or_fail("GET", "/api/v2/reports", "report:list")


def test_public_registration_requires_versioned_route(bare_container):
    with pytest.raises(ValidationError) as exc_info:
        bare_container.catalog.register_permission("GET", "/reports", "report:list")
    assert exc_info.value.code == "invalid_route"


@pytest.mark.parametrize("route", ["/api/v1users", "/api/v2reports/:id", "/api/vx/reports"])
def test_version_prefix_must_end_at_a_segment(bare_container, route):
    with pytest.raises(ValidationError) as exc_info:
        bare_container.catalog.register_permission("GET", route, "report:list")
    assert exc_info.value.code == "invalid_route"


def test_unknown_method_rejected(bare_container):
    with pytest.raises(ValidationError) as exc_info:
        bare_container.catalog.register_permission("FETCH", "/api/v1/reports", "report:list")
    assert exc_info.value.code == "invalid_method"


def test_pattern_resolution(bare_container):
    catalog = bare_container.catalog
    catalog.register_permission("GET", "/role-permissions/:roleId/permissions", "rolePermission:list", internal=True)
    assert catalog.resolve_action("GET", "/role-permissions/5/permissions") == "rolePermission:list"
    assert catalog.resolve_action("GET", "/role-permissions/5") is None


def test_more_literal_pattern_wins_regardless_of_order(bare_container):
    catalog = bare_container.catalog
    catalog.register_permission("GET", "/users/:id", "user:detail", internal=True)
    catalog.register_permission("GET", "/users/profile", "user:profile", internal=True)
    catalog.register_permission("GET", "/items/:id/:sub", "item:deep", internal=True)
    catalog.register_permission("GET", "/items/:id/meta", "item:meta", internal=True)

    assert catalog.resolve_action("GET", "/users/profile") == "user:profile"
    assert catalog.resolve_action("GET", "/users/42") == "user:detail"
    assert catalog.resolve_action("GET", "/items/7/meta") == "item:meta"
    assert catalog.resolve_action("GET", "/items/7/other") == "item:deep"


def test_registration_invalidates_cached_miss(bare_container):
    catalog = bare_container.catalog
    assert catalog.resolve_action("GET", "/reports/9") is None
    assert bare_container.cache.get("GET", "/reports/9") == ""

    catalog.register_permission("GET", "/api/v1/reports/:id", "report:detail")

    assert bare_container.cache.get("GET", "/reports/9") is None
    assert catalog.resolve_action("GET", "/reports/9") == "report:detail"


def test_registration_keeps_other_methods_cached(bare_container):
    catalog = bare_container.catalog
    catalog.resolve_action("DELETE", "/reports/9")
    catalog.register_permission("GET", "/api/v1/reports/:id", "report:detail")
    assert bare_container.cache.get("DELETE", "/reports/9") == ""


def test_check_input(bare_container):
    catalog = bare_container.catalog
    errors, exists = catalog.check_input("GET", "/reports", "Report:List")
    assert len(errors) == 2
    assert exists is False

    catalog.create_or_fail("GET", "/api/v1/reports", "report:list")
    errors, exists = catalog.check_input("get", "/api/v1/reports", "report:list")
    assert errors == []
    assert exists is True


def test_get_permission_not_found(bare_container):
    with pytest.raises(NotFoundError):
        bare_container.catalog.get_permission(999)


# ---------------------------------------------------------------------------
# Reporting over a bootstrapped catalog
# ---------------------------------------------------------------------------


def test_grouped_by_module(container):
    groups = {g["module"]: g for g in container.catalog.grouped_by_module()}
    assert groups["user"]["count"] == 3
    assert groups["invitationToken"]["count"] == 2


def test_stats_and_unused(container):
    stats = container.catalog.stats()
    assert stats["total_permissions"] == len(ADMIN_PERMISSIONS)
    assert stats["unused_permissions"] == 0
    assert stats["permissions_by_method"]["GET"] > 0

    extra = container.catalog.create_or_fail("GET", "/api/v1/reports", "report:list")
    assert [p.id for p in container.catalog.unused_permissions()] == [extra.id]


def test_routes_with_roles(container):
    rows = {(r["method"], r["route"]): r for r in container.catalog.routes_with_roles()}
    users = rows[("GET", "/users")]
    assert users["action"] == "user:list"
    assert users["roles"] == ["ADMIN"]
    assert users["description"] == "Retrieve user data"


def test_list_permissions_filters(container):
    items, total = container.catalog.list_permissions(module="role", page=1, limit=100)
    assert total == 5
    assert all(p.action.startswith("role:") for p in items)

    items, total = container.catalog.list_permissions(method="delete", page=1, limit=100)
    assert total > 0
    assert all(p.method == "DELETE" for p in items)
