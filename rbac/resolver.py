"""
rbac/resolver.py -- Route Action Resolver: (method, path) -> "resource:operation".

Two stages:
  1. Catalog lookup against a handful of path variants (normalised path,
     with/without leading slash, the framework's matched route template).
  2. Naming-convention fallback when nothing is registered, so every request
     produces some action string. Precision is traded for availability: an
     unregistered route still gets an action, and authorization simply fails
     unless some role was granted that inferred action.

infer_action_from_convention() is a pure function and has no dependency on
FastAPI or the catalog, so it is unit-tested on its own.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Protocol

from rbac.catalog import normalize_route

logger = logging.getLogger("gatekeeper.resolver")

# Second-segment literals that name the GET operation directly.
_NAMED_GET_OPERATIONS = frozenset({"profile", "roles"})

_TEMPLATE_PARAM_RE = re.compile(r"\{([^}:]+)(?::[^}]*)?\}")


class ActionLookup(Protocol):
    def resolve_action(self, method: str, path: str) -> Optional[str]: ...


def strip_api_version(path: str) -> str:
    return normalize_route(path)


def template_to_pattern(template: str) -> str:
    """Convert a FastAPI route template to the stored pattern syntax.

    '/api/v1/users/{user_id}' -> '/users/:user_id'
    """
    return normalize_route(_TEMPLATE_PARAM_RE.sub(r":\1", template))


def route_variants(path: str, route_template: str | None = None) -> list[str]:
    """Candidate route strings to try against the catalog, most likely first."""
    normalized = strip_api_version(path)
    if len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized.rstrip("/") or "/"
    variants = [normalized]
    if normalized.startswith("/"):
        variants.append(normalized[1:])
    else:
        variants.append(f"/{normalized}")
    if route_template:
        variants.append(template_to_pattern(route_template))
    return list(dict.fromkeys(v for v in variants if v))


def infer_action_from_convention(method: str, path: str) -> str:
    """Derive resource:operation from the path shape.

    resource = first segment. Operation by method:
      GET     second segment in {profile, roles} -> that literal;
              any ":" in the path or more than one segment -> detail; else list
      POST    second segment if present, else create
      PUT/PATCH update
      DELETE  delete
      other   lowercased method
    """
    method = method.upper()
    segments = [s for s in path.split("/") if s]
    resource = segments[0] if segments else "unknown"

    if method == "GET":
        if len(segments) > 1 and segments[1] in _NAMED_GET_OPERATIONS:
            operation = segments[1]
        elif ":" in path or len(segments) > 1:
            operation = "detail"
        else:
            operation = "list"
    elif method == "POST":
        operation = segments[1] if len(segments) > 1 else "create"
    elif method in ("PUT", "PATCH"):
        operation = "update"
    elif method == "DELETE":
        operation = "delete"
    else:
        operation = method.lower()

    return f"{resource}:{operation}"


class RouteActionResolver:
    def __init__(self, catalog: ActionLookup) -> None:
        self.catalog = catalog

    def resolve(self, method: str, path: str, route_template: str | None = None) -> str:
        method = method.upper()
        for variant in route_variants(path, route_template):
            action = self.catalog.resolve_action(method, variant)
            if action:
                return action
        action = infer_action_from_convention(method, strip_api_version(path))
        logger.debug("No catalog entry for %s %s; inferred %s", method, path, action)
        return action
