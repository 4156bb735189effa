"""
core/errors.py -- Error taxonomy shared by the auth core and the HTTP layer.

Every error carries a machine-readable code, a human message and the HTTP
status the API layer maps it to. The core raises these; api/main.py owns the
single exception handler that turns them into the ErrorResponse envelope.

Propagation rules:
  UnauthorizedError is never caught and downgraded by the decision engine.
  ForbiddenError is produced only by the "role lacks permission" decision.
  ValidationError is a BadRequestError raised for caller misuse (bad action
  format, bad role name, bad route prefix) and is surfaced verbatim.
"""

from __future__ import annotations


class GatekeeperError(Exception):
    status_code: int = 500
    default_code: str = "internal_error"

    def __init__(self, message: str, code: str | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail = detail


class BadRequestError(GatekeeperError):
    status_code = 400
    default_code = "bad_request"


class ValidationError(BadRequestError):
    default_code = "validation_error"


class UnauthorizedError(GatekeeperError):
    status_code = 401
    default_code = "unauthorized"


class ForbiddenError(GatekeeperError):
    status_code = 403
    default_code = "forbidden"


class NotFoundError(GatekeeperError):
    status_code = 404
    default_code = "not_found"


class ConflictError(GatekeeperError):
    status_code = 409
    default_code = "conflict"


class InternalError(GatekeeperError):
    pass
