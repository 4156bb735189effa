"""Unit tests for registration modes and auth/invitations.py.

Covers:
- public: anyone registers; duplicate email is a conflict
- closed: every attempt is refused
- domainwhitelist: only ALLOWED_DOMAINS may register (case-insensitive)
- invitation: a valid, unused, unexpired invitation is required and consumed
- invitation management is ADMIN-only; expiry bounds; cleanup
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.models import InvitationToken
from conftest import ADMIN_EMAIL, make_test_container
from core.errors import BadRequestError, ConflictError, ForbiddenError, ValidationError
from db.schema import to_iso


@pytest.fixture
def make_container():
    """Factory for bootstrapped containers with Settings overrides; closes them afterwards."""
    built = []

    def _make(**overrides):
        c = make_test_container(**overrides)
        c.bootstrap()
        built.append(c)
        return c

    yield _make
    for c in built:
        c.close()


def _admin(c):
    return c.principals.find_by_email(ADMIN_EMAIL)


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def test_public_registration(make_container):
    c = make_container(registration_mode="public")
    principal = c.auth.register(" New.User@Example.com ", "password123", "New", "User")
    assert principal.email == "new.user@example.com"
    assert principal.external_id
    assert principal.roles == []
    assert c.auth.login("new.user@example.com", "password123")[0].id == principal.id

    with pytest.raises(ConflictError) as exc_info:
        c.auth.register("NEW.USER@example.com", "password123")
    assert exc_info.value.code == "email_taken"


def test_closed_registration(make_container):
    c = make_container(registration_mode="closed")
    with pytest.raises(ForbiddenError) as exc_info:
        c.auth.register("someone@example.com", "password123")
    assert exc_info.value.code == "registration_closed"


def test_domain_whitelist(make_container):
    c = make_container(registration_mode="domainwhitelist", allowed_domains="Example.com, corp.io")
    assert c.auth.register("ann@example.com", "password123").email == "ann@example.com"
    assert c.auth.register("bo@CORP.io", "password123").email == "bo@corp.io"
    with pytest.raises(BadRequestError) as exc_info:
        c.auth.register("eve@evil.com", "password123")
    assert exc_info.value.code == "domain_not_allowed"
    with pytest.raises(BadRequestError):
        c.auth.register("eve@sub.example.com", "password123")


def test_invitation_registration(make_container):
    c = make_container(registration_mode="invitation")
    admin = _admin(c)

    with pytest.raises(BadRequestError) as exc_info:
        c.auth.register("guest@example.com", "password123")
    assert exc_info.value.code == "invitation_required"
    with pytest.raises(BadRequestError) as exc_info:
        c.auth.register("guest@example.com", "password123", invitation_token="not-a-real-token")
    assert exc_info.value.code == "invitation_invalid"

    invitation = c.invitations.create(admin.external_id, admin.roles, expires_in_hours=2)
    guest = c.auth.register("guest@example.com", "password123", invitation_token=invitation.token)
    assert guest.id is not None

    with pytest.raises(BadRequestError) as exc_info:
        c.auth.register("second@example.com", "password123", invitation_token=invitation.token)
    assert exc_info.value.code == "invitation_invalid"

    [stored] = c.invitations.list(admin.roles)
    assert stored.used is True
    assert stored.used_by == guest.id


def test_invitation_consumed_elsewhere_leaves_no_account(make_container, monkeypatch):
    c = make_container(registration_mode="invitation")
    admin = _admin(c)
    invitation = c.invitations.create(admin.external_id, admin.roles)
    # Another registration takes the token between validate() and consume().
    monkeypatch.setattr(c.invitations, "consume", lambda token, principal: False)

    with pytest.raises(BadRequestError) as exc_info:
        c.auth.register("late@example.com", "password123", invitation_token=invitation.token)
    assert exc_info.value.code == "invitation_invalid"
    assert c.principals.find_by_email("late@example.com") is None


# ---------------------------------------------------------------------------
# Invitation service
# ---------------------------------------------------------------------------


def test_invitation_requires_admin(container):
    admin = _admin(container)
    with pytest.raises(ForbiddenError):
        container.invitations.create(admin.external_id, ["SUPPORT"])
    with pytest.raises(ForbiddenError):
        container.invitations.list([])


@pytest.mark.parametrize("hours", [0, -1, 721])
def test_invitation_expiry_bounds(container, hours):
    admin = _admin(container)
    with pytest.raises(ValidationError) as exc_info:
        container.invitations.create(admin.external_id, admin.roles, expires_in_hours=hours)
    assert exc_info.value.code == "invalid_expiry"


def test_invitation_defaults(container):
    admin = _admin(container)
    invitation = container.invitations.create(admin.external_id, admin.roles)
    assert len(invitation.token) == 36
    expires = datetime.fromisoformat(invitation.expires_at)
    assert timedelta(hours=23) < expires - datetime.now(timezone.utc) <= timedelta(hours=24)
    assert container.invitations.validate(invitation.token).id == invitation.id


def test_expired_invitation_is_invalid_and_cleaned_up(container):
    admin = _admin(container)
    past = to_iso(datetime.now(timezone.utc) - timedelta(hours=1))
    container.invitation_store.create(InvitationToken(token="expired-token", created_by=admin.id, expires_at=past))
    live = container.invitations.create(admin.external_id, admin.roles)

    assert container.invitations.validate("expired-token") is None
    assert container.invitations.cleanup_expired() == 1
    assert [i.token for i in container.invitations.list(admin.roles)] == [live.token]
