"""
api/limiter.py -- Shared slowapi rate limiter for the credential endpoints.

api/main.py mounts it (app.state.limiter + SlowAPIMiddleware); the auth
routes decorate login and forgot-password with @limiter.limit(login_limit).
One shared instance means one counter store, keyed by client IP.

login_limit is passed as a callable so LOGIN_RATE_LIMIT is read from
Settings when the limit is evaluated, not frozen at import.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    """Current LOGIN_RATE_LIMIT, e.g. "10/minute"."""
    return get_settings().login_rate_limit
