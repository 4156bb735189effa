"""
auth/invitations.py -- Invitation tokens for invitation-only registration.

Only ADMIN principals create or list invitations. A token is a UUID4,
single-use, and expires after expires_in_hours. validate() and consume()
both reject used or expired tokens; consume() is the only writer of used=1.

Layer rule: no imports from api/, rbac/, or cache/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from auth.models import InvitationToken, Principal
from auth.store import InvitationStore, PrincipalStore
from core.errors import ForbiddenError, UnauthorizedError, ValidationError
from db.schema import now_iso, to_iso

logger = logging.getLogger("gatekeeper.invitations")

ADMIN_ROLE = "ADMIN"
DEFAULT_EXPIRES_IN_HOURS = 24
_MAX_EXPIRES_IN_HOURS = 24 * 30


class InvitationService:
    def __init__(self, store: InvitationStore, principals: PrincipalStore) -> None:
        self.store = store
        self.principals = principals

    def create(
        self,
        creator_external_id: str,
        roles: list[str],
        expires_in_hours: int = DEFAULT_EXPIRES_IN_HOURS,
    ) -> InvitationToken:
        _require_admin(roles)
        if expires_in_hours < 1 or expires_in_hours > _MAX_EXPIRES_IN_HOURS:
            raise ValidationError(
                f"expires_in_hours must be between 1 and {_MAX_EXPIRES_IN_HOURS}.",
                code="invalid_expiry",
            )
        creator = self.principals.find_by_external_id(creator_external_id)
        if creator is None:
            raise UnauthorizedError("Unauthorized.", code="principal_inactive")

        expires_at = datetime.now(timezone.utc) + timedelta(hours=expires_in_hours)
        invitation = self.store.create(
            InvitationToken(token=str(uuid.uuid4()), created_by=creator.id, expires_at=to_iso(expires_at))
        )
        logger.info("Invitation %s created by %s (expires %s)", invitation.id, creator.email, invitation.expires_at)
        return invitation

    def validate(self, token: str) -> InvitationToken | None:
        """Return the invitation if it is unused and unexpired, else None."""
        invitation = self.store.get_unused(token)
        if invitation is None or invitation.expires_at < now_iso():
            return None
        return invitation

    def consume(self, token: str, principal: Principal) -> bool:
        invitation = self.validate(token)
        if invitation is None:
            return False
        used = self.store.mark_used(invitation.id, principal.id)
        if used:
            logger.info("Invitation %s used by %s", invitation.id, principal.email)
        return used

    def list(self, roles: list[str]) -> list[InvitationToken]:
        _require_admin(roles)
        return self.store.list_all()

    def cleanup_expired(self) -> int:
        removed = self.store.purge_expired()
        if removed:
            logger.info("Removed %d expired invitation token(s)", removed)
        return removed


def _require_admin(roles: list[str]) -> None:
    if ADMIN_ROLE not in (roles or []):
        raise ForbiddenError("Only administrators can manage invitations.")
