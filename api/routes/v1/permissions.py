"""
api/routes/v1/permissions.py -- Permission catalog endpoints.

Routes:
  GET  /api/v1/permissions                  -- filtered, sorted, paginated list
  GET  /api/v1/permissions/grouped          -- permissions grouped by module
  GET  /api/v1/permissions/routes           -- every route with the roles holding it
  GET  /api/v1/permissions/stats            -- counts by method/module, usage extremes
  GET  /api/v1/permissions/unused           -- permissions no role holds
  GET  /api/v1/permissions/usage            -- action -> number of role grants
  GET  /api/v1/permissions/resolve          -- which action would (method, path) map to
  GET  /api/v1/permissions/{permission_id}  -- detail
  POST /api/v1/permissions                  -- create (409 on identical triple)
  POST /api/v1/permissions/validate         -- dry-run validation of a create body

Literal sub-paths are declared before /permissions/{permission_id}; the
router matches in declaration order.
"""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    Page,
    PermissionCreate,
    PermissionGroup,
    PermissionResponse,
    PermissionStats,
    PermissionValidateResponse,
    ResolveResponse,
    RouteInfo,
    UsageRow,
)
from auth.dependencies import authorize, get_container
from rbac.resolver import strip_api_version

router = APIRouter(dependencies=[Depends(authorize)])


@router.get("/permissions", response_model=Page[PermissionResponse])
def list_permissions(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    method: Optional[str] = Query(None, max_length=10),
    module: Optional[str] = Query(None, max_length=50),
    action: Optional[str] = Query(None, max_length=100),
    sort_by: Literal["created_at", "method", "route", "action"] = "created_at",
    sort_order: Literal["asc", "desc"] = "asc",
) -> Page[PermissionResponse]:
    permissions, total = get_container(request).catalog.list_permissions(
        method=method,
        module=module,
        action=action,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return Page[PermissionResponse](
        items=[PermissionResponse.from_permission(p) for p in permissions],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/permissions/grouped", response_model=list[PermissionGroup])
def grouped(request: Request) -> list[PermissionGroup]:
    return [
        PermissionGroup(
            module=group["module"],
            count=group["count"],
            permissions=[PermissionResponse.from_permission(p) for p in group["permissions"]],
        )
        for group in get_container(request).catalog.grouped_by_module()
    ]


@router.get("/permissions/routes", response_model=list[RouteInfo])
def routes(request: Request) -> list[RouteInfo]:
    return [RouteInfo(**row) for row in get_container(request).catalog.routes_with_roles()]


@router.get("/permissions/stats", response_model=PermissionStats)
def stats(request: Request) -> PermissionStats:
    return PermissionStats(**get_container(request).catalog.stats())


@router.get("/permissions/unused", response_model=list[PermissionResponse])
def unused(request: Request) -> list[PermissionResponse]:
    return [PermissionResponse.from_permission(p) for p in get_container(request).catalog.unused_permissions()]


@router.get("/permissions/usage", response_model=list[UsageRow])
def usage(request: Request) -> list[UsageRow]:
    return [UsageRow(**row) for row in get_container(request).catalog.usage_stats()]


@router.get("/permissions/resolve", response_model=ResolveResponse)
def resolve(
    request: Request,
    method: str = Query(..., min_length=1, max_length=10),
    path: str = Query(..., min_length=1, max_length=255),
) -> ResolveResponse:
    """Show which action a request would be checked against.

    registered=False means no catalog row matched and the action came from
    the naming-convention fallback.
    """
    container = get_container(request)
    method = method.upper()
    action = container.resolver.resolve(method, path)
    registered = container.catalog.resolve_action(method, strip_api_version(path)) is not None
    return ResolveResponse(method=method, path=path, action=action, registered=registered)


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
def get_permission(request: Request, permission_id: int) -> PermissionResponse:
    return PermissionResponse.from_permission(get_container(request).catalog.get_permission(permission_id))


@router.post("/permissions", response_model=PermissionResponse, status_code=201)
def create_permission(request: Request, body: PermissionCreate) -> PermissionResponse:
    permission = get_container(request).catalog.create_or_fail(body.method, body.route, body.action)
    return PermissionResponse.from_permission(permission)


@router.post("/permissions/validate", response_model=PermissionValidateResponse)
def validate_permission(request: Request, body: PermissionCreate) -> PermissionValidateResponse:
    errors, exists = get_container(request).catalog.check_input(body.method, body.route, body.action)
    return PermissionValidateResponse(valid=not errors and not exists, errors=errors, exists=exists)
