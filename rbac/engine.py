"""
rbac/engine.py -- Authorization decision engine.

authenticate() turns a bearer token into Claims. authorize() maps
(method, path) to an action and asks the role/permission graph whether any
of the caller's roles holds it.

Errors from the token service propagate untouched: a bad token is always
UnauthorizedError, never downgraded to Forbidden. ForbiddenError is raised
only here, and only for "authenticated, but no role grants this action".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol

from auth.models import Claims
from core.errors import ForbiddenError
from rbac.graph import RolePermissionGraph
from rbac.resolver import RouteActionResolver

logger = logging.getLogger("gatekeeper.engine")


class TokenVerifier(Protocol):
    def verify(self, token: str, expected_type: str = "access") -> Claims: ...


@dataclass
class Decision:
    allowed: bool
    action: str
    method: str = ""
    path: str = ""


class AuthorizationEngine:
    def __init__(self, tokens: TokenVerifier, resolver: RouteActionResolver, graph: RolePermissionGraph) -> None:
        self.tokens = tokens
        self.resolver = resolver
        self.graph = graph

    def authenticate(self, token: str) -> Claims:
        return self.tokens.verify(token, "access")

    def decide(self, roles: Iterable[str], method: str, path: str, route_template: str | None = None) -> Decision:
        """Evaluate without raising. Used by diagnostics and by authorize()."""
        method = method.upper()
        action = self.resolver.resolve(method, path, route_template)
        allowed = self.graph.is_authorized(list(roles), method, action)
        return Decision(allowed=allowed, action=action, method=method, path=path)

    def authorize(self, roles: Iterable[str], method: str, path: str, route_template: str | None = None) -> Decision:
        decision = self.decide(roles, method, path, route_template)
        if not decision.allowed:
            logger.info("Denied %s %s (action %s)", decision.method, path, decision.action)
            raise ForbiddenError(
                "You do not have permission to perform this action.",
                code="forbidden",
                detail=decision.action,
            )
        return decision
