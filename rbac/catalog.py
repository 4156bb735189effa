"""
rbac/catalog.py -- Permission Catalog: (method, route pattern, action) triples.

The catalog answers one hot-path question, "which action does this concrete
(method, path) map to?", and owns every write to the permissions table.

Resolution order for resolve_action(method, path):
  1. Action cache (hits and cached misses).
  2. Exact (method, route) row.
  3. Segment-wise pattern match over every route stored for the method.
     Both sides are split on "/" with empty segments dropped; lengths must be
     equal; a pattern segment starting with ":" matches any single segment,
     anything else must be literally equal.

Overlapping patterns (e.g. /users/:id and /users/profile both matching
/users/profile) are resolved by specificity: candidates with more literal
segments are tried first, ties go to the oldest record. Resolution is
therefore deterministic and independent of insertion order for every case
except two patterns with identical literal counts.

Stored routes never carry an API version prefix: "/api/v1/users" is stored as
"/users", so a v2 mount resolves against the same rows.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy.exc import IntegrityError

from auth.models import Permission
from cache.store import ActionCache
from core.errors import ConflictError, NotFoundError, ValidationError
from rbac.store import RBACStore

logger = logging.getLogger("gatekeeper.catalog")

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")

# Public API: lowercase letters only on both sides of exactly one colon.
_PUBLIC_ACTION_RE = re.compile(r"^[a-z]+:[a-z]+$")
# Internal/bootstrap: one colon, each side starts lowercase, camelCase allowed.
_INTERNAL_ACTION_RE = re.compile(r"^[a-z][A-Za-z]*:[a-z][A-Za-z]*$")
_VERSION_PREFIX_RE = re.compile(r"^/api/v\d+(?=/|$)")

_MAX_ROUTE_LENGTH = 255
_MAX_ACTION_LENGTH = 100


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def normalize_route(route: str) -> str:
    """Strip a leading /api/vN prefix. '/api/v1/users' -> '/users', '/api/v2' -> '/'."""
    stripped = _VERSION_PREFIX_RE.sub("", route, count=1)
    if stripped != route:
        return stripped or "/"
    return route


def matches_route_pattern(path: str, pattern: str) -> bool:
    """Return True if the concrete path structurally matches the stored route pattern."""
    if path == pattern:
        return True
    path_segments = [s for s in path.split("/") if s]
    pattern_segments = [s for s in pattern.split("/") if s]
    if len(path_segments) != len(pattern_segments):
        return False
    for actual, expected in zip(path_segments, pattern_segments):
        if expected.startswith(":"):
            continue
        if actual != expected:
            return False
    return True


def literal_segment_count(pattern: str) -> int:
    return sum(1 for s in pattern.split("/") if s and not s.startswith(":"))


def validate_action(action: str, internal: bool = False) -> None:
    """Raise ValidationError unless action is module:operation shaped."""
    regex = _INTERNAL_ACTION_RE if internal else _PUBLIC_ACTION_RE
    if not action or len(action) > _MAX_ACTION_LENGTH or action.count(":") != 1 or not regex.match(action):
        raise ValidationError(
            'Action must follow the format "module:operation".',
            code="invalid_action",
            detail=action,
        )


def validate_method(method: str) -> str:
    method = (method or "").upper()
    if method not in HTTP_METHODS:
        raise ValidationError(f"Unsupported HTTP method: {method or '<empty>'}.", code="invalid_method")
    return method


def validate_public_route(route: str) -> None:
    if not route or len(route) > _MAX_ROUTE_LENGTH or not _VERSION_PREFIX_RE.match(route):
        raise ValidationError("Route must start with /api/vN/.", code="invalid_route", detail=route)


def describe_route(method: str, action: str) -> str:
    resource = action.split(":", 1)[0]
    if method == "GET":
        return f"Retrieve {resource} data"
    if method == "POST":
        return f"Create new {resource}"
    if method in ("PUT", "PATCH"):
        return f"Update {resource} data"
    if method == "DELETE":
        return f"Delete {resource}"
    return f"{method} operation on {resource}"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class PermissionCatalog:
    def __init__(self, store: RBACStore, cache: ActionCache) -> None:
        self.store = store
        self.cache = cache

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_action(self, method: str, path: str) -> str | None:
        """Map a concrete (method, path) to its action, or None when nothing matches."""
        method = method.upper()
        cached = self.cache.get(method, path)
        if cached is not None:
            return cached or None

        permission = self.store.find_by_method_route(method, path)
        if permission is None:
            permission = self._match_pattern(method, path)

        action = permission.action if permission is not None else ""
        self.cache.set(method, path, action)
        return action or None

    def _match_pattern(self, method: str, path: str) -> Permission | None:
        candidates = self.store.permissions_for_method(method)
        # sorted() is stable, so equal specificity keeps the store's id order.
        candidates = sorted(candidates, key=lambda p: -literal_segment_count(p.route))
        for permission in candidates:
            if matches_route_pattern(path, permission.route):
                return permission
        return None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_permission(self, method: str, route: str, action: str, internal: bool = False) -> Permission:
        """Idempotent create. Returns the existing record for an identical triple.

        internal=True is the bootstrap path: no /api/vN prefix required and
        camelCase operations are accepted. Both paths store the route with
        any version prefix stripped.
        """
        method = validate_method(method)
        if not internal:
            validate_public_route(route)
        validate_action(action, internal=internal)
        normalized = normalize_route(route)

        existing = self.store.find_permission(method, normalized, action)
        if existing is not None:
            return existing
        try:
            permission = self.store.create_permission(Permission(method=method, route=normalized, action=action))
        except IntegrityError:
            # Concurrent registration of the same triple; return the winner's row.
            permission = self.store.find_permission(method, normalized, action)
            if permission is None:
                raise
            return permission
        self.cache.invalidate_method(method)
        logger.info("Permission registered: %s %s -> %s", method, normalized, action)
        return permission

    def create_or_fail(self, method: str, route: str, action: str) -> Permission:
        """Public create. ConflictError if the identical (normalised) triple exists."""
        method = validate_method(method)
        validate_public_route(route)
        validate_action(action)
        normalized = normalize_route(route)

        if self.store.find_permission(method, normalized, action) is not None:
            raise ConflictError(
                "Permission already exists with the same method, route, and action.",
                detail=f"{method} {normalized} {action}",
            )
        try:
            permission = self.store.create_permission(Permission(method=method, route=normalized, action=action))
        except IntegrityError as exc:
            raise ConflictError("Permission already exists with the same method, route, and action.") from exc
        self.cache.invalidate_method(method)
        logger.info("Permission created: %s %s -> %s", method, normalized, action)
        return permission

    def check_input(self, method: str, route: str, action: str) -> tuple[list[str], bool]:
        """Dry run of create_or_fail: (validation messages, identical triple already stored)."""
        errors = []
        for check in (
            lambda: validate_method(method),
            lambda: validate_public_route(route),
            lambda: validate_action(action),
        ):
            try:
                check()
            except ValidationError as exc:
                errors.append(exc.message)
        if errors:
            return errors, False
        exists = self.store.find_permission(method.upper(), normalize_route(route), action) is not None
        return errors, exists

    # ------------------------------------------------------------------
    # Queries and reporting
    # ------------------------------------------------------------------

    def get_permission(self, permission_id: int) -> Permission:
        permission = self.store.get_permission(permission_id)
        if permission is None:
            raise NotFoundError("Permission not found.", detail=str(permission_id))
        return permission

    def list_permissions(self, **filters) -> tuple[list[Permission], int]:
        if filters.get("method"):
            filters["method"] = validate_method(filters["method"])
        return self.store.list_permissions(**filters)

    def grouped_by_module(self) -> list[dict]:
        groups: dict[str, dict] = {}
        for permission in self.store.all_permissions(order_by="action"):
            group = groups.setdefault(permission.module, {"module": permission.module, "permissions": [], "count": 0})
            group["permissions"].append(permission)
            group["count"] += 1
        return list(groups.values())

    def routes_with_roles(self) -> list[dict]:
        """Each permission with a generated description and the names of roles holding it."""
        role_names = self.store.role_names_by_permission()
        permissions = sorted(self.store.all_permissions(), key=lambda p: (p.route, p.method))
        return [
            {
                "route": p.route,
                "method": p.method,
                "action": p.action,
                "description": describe_route(p.method, p.action),
                "roles": role_names.get(p.id, []),
            }
            for p in permissions
        ]

    def usage_stats(self) -> list[dict]:
        """Action -> number of role grants, most used first."""
        role_names = self.store.role_names_by_permission()
        counts: dict[str, int] = {}
        for permission in self.store.all_permissions():
            granted = len(role_names.get(permission.id, []))
            if granted:
                counts[permission.action] = counts.get(permission.action, 0) + granted
        return [
            {"action": action, "count": count}
            for action, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        ]

    def unused_permissions(self) -> list[Permission]:
        used = self.store.role_names_by_permission()
        return [p for p in self.store.all_permissions() if p.id not in used]

    def stats(self) -> dict:
        all_permissions = self.store.all_permissions()
        by_method: dict[str, int] = {}
        by_module: dict[str, int] = {}
        for permission in all_permissions:
            by_method[permission.method] = by_method.get(permission.method, 0) + 1
            by_module[permission.module] = by_module.get(permission.module, 0) + 1
        usage = self.usage_stats()
        return {
            "total_permissions": len(all_permissions),
            "permissions_by_method": by_method,
            "permissions_by_module": by_module,
            "unused_permissions": len(self.unused_permissions()),
            "most_used_permissions": usage[:10],
            "least_used_permissions": list(reversed(usage[-10:])),
        }
