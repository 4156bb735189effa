"""
auth/service.py -- Token lifecycle and account flows.

Token states: ISSUED -> VALID -> (REFRESHED | REVOKED | EXPIRED).

verify() checks, in order:
  1. blacklist              -> UnauthorizedError(token_revoked)
  2. signature and expiry   -> UnauthorizedError(token_invalid | token_expired)
  3. token type             -> UnauthorizedError(token_type)
  4. access tokens only: the principal still exists and is active
     (principal_inactive), and the role set embedded at issue time equals
     the current role set (roles_changed). Any role change therefore
     invalidates every outstanding access token for that principal.

Refresh is additive: a refresh issues a new pair and leaves the presented
refresh token valid until it expires or is logged out.

Account flows (login, register, password reset) live here too because they
are the only producers of tokens and reset records.

Layer rule: no imports from api/, rbac/, or cache/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.email import EmailSender, password_reset_message
from auth.invitations import InvitationService
from auth.models import Claims, PasswordResetToken, Principal, RevokedToken, TokenPair
from auth.store import PrincipalStore, TokenStore
from auth.tokens import (
    ACCESS,
    DUMMY_HASH,
    REFRESH,
    decode_token,
    decode_unverified,
    encode_token,
    generate_reset_token,
    hash_password,
    hash_token,
    parse_expiry,
    verify_password,
)
from core.config import RegistrationMode, Settings
from core.errors import BadRequestError, ConflictError, ForbiddenError, UnauthorizedError
from db.schema import now_iso, to_iso

logger = logging.getLogger("gatekeeper.auth")

DEFAULT_ACCESS_EXPIRY = "15m"
DEFAULT_REFRESH_EXPIRY = "7d"
# exp values past year 9999 cannot become a datetime.
_MAX_EXP = 253402300800


class AuthService:
    """Issues, verifies, refreshes and revokes tokens; runs the account flows.

    Usage:
        service = AuthService(settings, principals, token_store, invitations, email)
        principal, pair = service.login("a@example.com", "secret")
        claims = service.verify(pair.access_token, "access")
    """

    def __init__(
        self,
        settings: Settings,
        principals: PrincipalStore,
        tokens: TokenStore,
        invitations: InvitationService,
        email: EmailSender,
    ) -> None:
        self.settings = settings
        self.principals = principals
        self.tokens = tokens
        self.invitations = invitations
        self.email = email
        self.secret = settings.secret_key
        self.access_expires_in = parse_expiry(settings.jwt_access_token_expiry, DEFAULT_ACCESS_EXPIRY)
        self.refresh_expires_in = parse_expiry(settings.jwt_refresh_token_expiry, DEFAULT_REFRESH_EXPIRY)

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access_token(self, principal: Principal) -> str:
        claims = {
            "sub": principal.external_id,
            "type": ACCESS,
            "email": principal.email,
            "roles": list(principal.roles),
        }
        return encode_token(claims, self.secret, self.access_expires_in)

    def issue_refresh_token(self, principal: Principal) -> str:
        return encode_token({"sub": principal.external_id, "type": REFRESH}, self.secret, self.refresh_expires_in)

    def issue_pair(self, principal: Principal) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(principal),
            refresh_token=self.issue_refresh_token(principal),
            access_expires_in=self.access_expires_in,
            refresh_expires_in=self.refresh_expires_in,
        )

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, token: str, expected_type: str = ACCESS) -> Claims:
        if self.is_revoked(token):
            raise UnauthorizedError("Token has been revoked.", code="token_revoked")

        try:
            payload = decode_token(token, self.secret)
        except ExpiredSignatureError as exc:
            raise UnauthorizedError("Token has expired.", code="token_expired") from exc
        except JWTError as exc:
            raise UnauthorizedError("Invalid token.", code="token_invalid") from exc

        if "sub" not in payload or "exp" not in payload:
            raise UnauthorizedError("Invalid token.", code="token_invalid")
        claims = Claims.from_payload(payload)

        if claims.type != expected_type:
            raise UnauthorizedError("Invalid token type.", code="token_type")

        if expected_type == ACCESS:
            principal = self.principals.find_by_external_id(claims.sub)
            if principal is None or not principal.is_active:
                raise UnauthorizedError("User no longer exists or is inactive.", code="principal_inactive")
            if set(principal.roles) != set(claims.roles):
                raise UnauthorizedError("User roles have changed.", code="roles_changed")

        return claims

    def is_revoked(self, token: str) -> bool:
        return self.tokens.is_revoked(hash_token(token, self.secret))

    # ------------------------------------------------------------------
    # Refresh / revoke
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str) -> TokenPair:
        claims = self.verify(refresh_token, REFRESH)
        principal = self.principals.find_by_external_id(claims.sub)
        if principal is None or not principal.is_active:
            raise UnauthorizedError("User no longer exists or is inactive.", code="principal_inactive")
        return self.issue_pair(principal)

    def logout(self, access_token: str, refresh_token: str | None = None) -> None:
        """Blacklist the access token and, when it decodes, the refresh token.

        Neither token is verified: an expired or already-revoked token can
        still be logged out. An access token that does not decode at all, or
        lacks a sub or a usable numeric exp, is a BadRequestError. An
        undecodable refresh token is ignored.
        """
        payload = decode_unverified(access_token)
        if not _revocable(payload):
            raise BadRequestError("Invalid access token.", code="invalid_token")
        self._blacklist(access_token, payload, "logout")

        if refresh_token:
            refresh_payload = decode_unverified(refresh_token)
            if _revocable(refresh_payload):
                self._blacklist(refresh_token, refresh_payload, "logout")
        logger.info("Logout for principal %s", payload["sub"])

    def revoke(self, token: str, reason: str = "revoked") -> bool:
        """Blacklist a single token. Returns False if it was already revoked."""
        payload = decode_unverified(token)
        if not _revocable(payload):
            raise BadRequestError("Invalid token.", code="invalid_token")
        return self._blacklist(token, payload, reason)

    def _blacklist(self, token: str, payload: dict, reason: str) -> bool:
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        return self.tokens.add_revoked(
            RevokedToken(
                token_hash=hash_token(token, self.secret),
                expires_at=to_iso(expires_at),
                principal_external_id=str(payload["sub"]),
                reason=reason,
            )
        )

    def sweep_revoked_tokens(self) -> int:
        removed = self.tokens.purge_expired_revoked()
        if removed:
            logger.info("Purged %d expired revoked token(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # Login / register
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> tuple[Principal, TokenPair]:
        principal = self.principals.find_by_email(_normalize_email(email))
        if principal is None or not principal.hashed_password:
            # Timing equalization: always run bcrypt even when the user does not exist.
            verify_password(password, DUMMY_HASH)
            raise UnauthorizedError("Invalid credentials.", code="invalid_credentials")
        if not verify_password(password, principal.hashed_password) or not principal.is_active:
            raise UnauthorizedError("Invalid credentials.", code="invalid_credentials")
        logger.info("Login succeeded for %s", principal.email)
        return principal, self.issue_pair(principal)

    def register(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        invitation_token: str | None = None,
    ) -> Principal:
        email = _normalize_email(email)
        mode = self.settings.registration_mode

        if mode == RegistrationMode.closed:
            raise ForbiddenError("Registration is closed.", code="registration_closed")
        if mode == RegistrationMode.invitation:
            if not invitation_token:
                raise BadRequestError("Invitation token required.", code="invitation_required")
            if self.invitations.validate(invitation_token) is None:
                raise BadRequestError("Invalid or expired invitation token.", code="invitation_invalid")
        if mode == RegistrationMode.domain_whitelist:
            domain = email.rpartition("@")[2]
            if not domain or domain not in self.settings.allowed_domain_list:
                raise BadRequestError("Email domain not allowed.", code="domain_not_allowed")

        try:
            principal = self.principals.create(
                Principal(
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                    hashed_password=hash_password(password),
                )
            )
        except IntegrityError as exc:
            raise ConflictError("Email is already registered.", code="email_taken") from exc

        if mode == RegistrationMode.invitation and not self.invitations.consume(invitation_token, principal):
            # Lost a race for the token; the account must not outlive it.
            self.principals.delete(principal.id)
            raise BadRequestError("Failed to use invitation token.", code="invitation_invalid")

        logger.info("Registered principal %s (%s)", principal.external_id, principal.email)
        return principal

    def get_principal(self, external_id: str) -> Principal:
        principal = self.principals.find_by_external_id(external_id)
        if principal is None or not principal.is_active:
            raise UnauthorizedError("User no longer exists or is inactive.", code="principal_inactive")
        return principal

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> bool:
        """Always True, so the response never reveals whether the email exists."""
        try:
            principal = self.principals.find_by_email(_normalize_email(email))
            if principal is None or not principal.is_active:
                return True

            expire_minutes = self.settings.password_reset_expire_minutes
            token = generate_reset_token()
            expires_at = datetime.now(timezone.utc) + timedelta(minutes=expire_minutes)
            self.tokens.create_reset_token(
                PasswordResetToken(principal_id=principal.id, token=token, expires_at=to_iso(expires_at))
            )

            reset_url = f"{self.settings.frontend_url.rstrip('/')}/reset-password?token={token}"
            subject, html_body, text_body = password_reset_message(principal.first_name, reset_url, expire_minutes)
            if not self.email.send_email(principal.email, subject, html_body, text_body):
                logger.warning("Password reset email to %s was not delivered", principal.email)
        except SQLAlchemyError:
            logger.exception("Password reset request failed")
        return True

    def reset_password(self, token: str, new_password: str) -> bool:
        record = self.tokens.get_unused_reset_token(token)
        if record is None or record.expires_at < now_iso():
            return False
        principal = self.principals.get_by_id(record.principal_id)
        if principal is None:
            return False
        # Claim the token before changing the password so two concurrent
        # resets with the same token cannot both succeed.
        if not self.tokens.mark_reset_token_used(record.id):
            return False
        principal.hashed_password = hash_password(new_password)
        self.principals.save(principal)
        logger.info("Password reset for %s", principal.email)
        return True


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _revocable(payload: dict | None) -> bool:
    """An unverified payload can be blacklisted only with a sub and a numeric exp."""
    if not payload or not payload.get("sub"):
        return False
    exp = payload.get("exp")
    return isinstance(exp, (int, float)) and not isinstance(exp, bool) and 0 < exp < _MAX_EXP
