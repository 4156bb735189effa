"""Unit tests for rbac/bootstrap.py -- first-run seeding."""

from conftest import ADMIN_EMAIL, make_test_container
from rbac.bootstrap import ADMIN_PERMISSIONS, ADMIN_ROLE


def test_first_run_seeds_everything(bare_container):
    report = bare_container.bootstrap()
    assert report.role_created
    assert report.admin_created
    assert report.granted == len(ADMIN_PERMISSIONS)
    assert report.errors == 0

    admin = bare_container.principals.find_by_email(ADMIN_EMAIL)
    assert admin.roles == [ADMIN_ROLE]
    assert (admin.first_name, admin.last_name) == ("Admin", "User")
    assert len(bare_container.graph.effective_permissions([ADMIN_ROLE])) == len(ADMIN_PERMISSIONS)


def test_bootstrap_is_idempotent(container):
    report = container.bootstrap()
    assert not report.role_created
    assert not report.admin_created
    assert report.granted == 0
    assert len(container.principals.list_principals()[0]) == 1


def test_removed_grants_are_not_restored(container):
    admin_role = container.roles.find_by_name(ADMIN_ROLE)
    permission = container.rbac_store.find_permission("DELETE", "/roles/:id", "role:delete")
    container.graph.revoke(admin_role, [permission.id])

    container.bootstrap()
    assert not container.graph.has_permission(admin_role, permission)


def test_admin_user_skipped_without_password():
    c = make_test_container(default_admin_password="")
    try:
        report = c.bootstrap()
        assert report.role_created
        assert not report.admin_created
        assert c.principals.find_by_email(ADMIN_EMAIL) is None
        assert report.granted == len(ADMIN_PERMISSIONS)
    finally:
        c.close()


def test_admin_user_skipped_without_email():
    c = make_test_container(default_admin_email="")
    try:
        assert not c.bootstrap().admin_created
        assert not c.principals.has_principals()
    finally:
        c.close()
