"""
auth/dependencies.py -- FastAPI Depends() helpers for the request pipeline.

Two steps, mounted per route:
  authenticate(request)         Bearer token -> Claims, stored on request.state.claims.
  authorize(request, claims)    depends on authenticate; resolves the request's
                                action and raises 403 unless a role grants it.

Routes mount neither (public), authenticate alone (any signed-in caller),
or authorize (which pulls in authenticate):

    @router.get("/users", dependencies=[Depends(authorize)])

Both read the service graph from request.app.state.container, built in the
lifespan by api.container.build_container().

Errors are raised as core.errors types; api/main.py maps them to the
ErrorResponse envelope.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. It does not import from api/.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import Claims
from core.errors import UnauthorizedError

_BEARER_PREFIX = "bearer "


def get_container(request: Request):
    """Return the DI container the lifespan stored on app.state."""
    return request.app.state.container


def header_token(request: Request) -> str | None:
    """Return the raw token from Authorization: Bearer <token>, or None. Nothing is verified."""
    header = request.headers.get("Authorization", "")
    if not header.lower().startswith(_BEARER_PREFIX):
        return None
    return header[len(_BEARER_PREFIX) :].strip() or None


def bearer_token(request: Request) -> str:
    """Extract the raw token from Authorization: Bearer <token>.

    Raises UnauthorizedError(missing_token) if the header is absent or malformed.
    """
    token = header_token(request)
    if token is None:
        raise UnauthorizedError("Authentication required.", code="missing_token")
    return token


def authenticate(request: Request) -> Claims:
    """Require a valid, unrevoked access token.

    Use as a FastAPI dependency:
        @router.get("/me")
        def route(claims: Claims = Depends(authenticate)): ...
    """
    token = bearer_token(request)
    claims = get_container(request).engine.authenticate(token)
    request.state.claims = claims
    request.state.token = token
    return claims


def authorize(request: Request, claims: Claims = Depends(authenticate)) -> Claims:
    """Require that one of the caller's roles holds the action for this route.

    The matched route template (e.g. /api/v1/users/{user_id}) is passed along
    so a registered ":user_id" pattern matches even before the cache warms.
    """
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    decision = get_container(request).engine.authorize(claims.roles, request.method, request.url.path, template)
    request.state.action = decision.action
    return claims
