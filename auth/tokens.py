"""
auth/tokens.py -- JWT, password hashing, expiry parsing and token hashing primitives.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the shared SECRET_KEY.
       Access tokens carry sub/type/email/roles, refresh tokens sub/type only.
       Every token gets a random jti so two tokens minted for the same
       principal in the same second are still distinct strings (the
       blacklist is keyed by token value).

  Passwords: bcrypt used directly. The _DUMMY_HASH constant enables timing
       equalization in AuthService.login() so response time does not reveal
       whether an email is registered.

  Blacklist hashes: HMAC-SHA256(SECRET_KEY, token). Deterministic, so the
       revoked_tokens UNIQUE index gives O(1) lookup, and a leaked table
       cannot be replayed as bearer tokens.

These are pure functions: the secret is always passed in by the caller
(AuthService holds it), never read from a module-level global.

Layer rule: no imports from api/, rbac/, or cache/.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are silently truncated by bcrypt. The API
    layer caps password fields well below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
DUMMY_HASH: str = hash_password("gatekeeper_timing_dummy")


# ---------------------------------------------------------------------------
# Expiry parsing
# ---------------------------------------------------------------------------

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}

_WORD_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 60 * 60,
    "day": 24 * 60 * 60,
    "week": 7 * 24 * 60 * 60,
    "month": 30 * 24 * 60 * 60,
    "year": 365 * 24 * 60 * 60,
}

_INT_RE = re.compile(r"^\d+$")
_SHORT_RE = re.compile(r"^(\d+)([smhd])$")
_VERBOSE_RE = re.compile(r"^(\d+)\s+(second|minute|hour|day|week|month|year)s?$", re.IGNORECASE)


def _parse_duration(value: str) -> int | None:
    value = value.strip()
    if _INT_RE.match(value):
        return int(value)
    match = _SHORT_RE.match(value)
    if match:
        return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    match = _VERBOSE_RE.match(value)
    if match:
        return int(match.group(1)) * _WORD_SECONDS[match.group(2).lower()]
    return None


def parse_expiry(value: str | int | None, default: str | int) -> int:
    """Turn an expiry setting into seconds.

    Accepts a pure integer (seconds), "<n>[smhd]" or "<n> <unit>[s]" with
    unit in second/minute/hour/day/week/month/year. Anything else (including
    empty) falls back to default, which must itself be parseable.

        parse_expiry("15m", "15m")        -> 900
        parse_expiry("2 hours", "15m")    -> 7200
        parse_expiry("soon", "7d")        -> 604800
    """
    if isinstance(value, int) and value >= 0:
        return value
    if isinstance(value, str) and value:
        seconds = _parse_duration(value)
        if seconds is not None:
            return seconds
    if isinstance(default, int):
        return default
    seconds = _parse_duration(default)
    if seconds is None:
        raise ValueError(f"Default expiry {default!r} is not a valid duration.")
    return seconds


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def encode_token(claims: dict, secret: str, expire_seconds: int) -> str:
    """Sign claims with iat, exp and a random jti added."""
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload["iat"] = int(now.timestamp())
    payload["exp"] = int((now + timedelta(seconds=expire_seconds)).timestamp())
    payload["jti"] = uuid.uuid4().hex
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_token(token: str, secret: str) -> dict:
    """Verify signature and expiry. Raises jose.ExpiredSignatureError / JWTError."""
    return jwt.decode(token, secret, algorithms=[ALGORITHM])


def decode_unverified(token: str) -> dict | None:
    """Read the payload without checking signature or expiry. None if not a JWT at all."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    return claims if isinstance(claims, dict) else None


# ---------------------------------------------------------------------------
# Opaque token helpers
# ---------------------------------------------------------------------------


def hash_token(token: str, secret: str) -> str:
    """Return HMAC-SHA256(secret, token) as hex. Used as the blacklist key."""
    return hmac.new(secret.encode(), token.encode(), hashlib.sha256).hexdigest()


def generate_reset_token() -> str:
    """64 hex chars, 256 bits of entropy."""
    return secrets.token_hex(32)
