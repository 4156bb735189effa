"""
api/routes/v1/role_permissions.py -- Role <-> Permission grant endpoints.

Routes:
  GET    /api/v1/role-permissions/{role_id}/permissions            -- paginated grants of a role
  POST   /api/v1/role-permissions/{role_id}/permissions            -- add grants (idempotent)
  PUT    /api/v1/role-permissions/{role_id}/permissions            -- replace the grant set atomically
  DELETE /api/v1/role-permissions/{role_id}/permissions            -- remove grants
  GET    /api/v1/role-permissions/{role_id}/permissions/effective  -- everything the role can do
  GET    /api/v1/role-permissions/{role_id}/permissions/{permission_id}/check
  GET    /api/v1/role-permissions/permissions/{permission_id}/roles
  GET    /api/v1/role-permissions/{assignment_id}                  -- one grant record
  DELETE /api/v1/role-permissions/{assignment_id}

A grant change takes effect on the next request; no token is invalidated,
since tokens carry role names, not permissions.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    AssignPermissionsResponse,
    Page,
    PermissionCheckResponse,
    PermissionIdsRequest,
    PermissionResponse,
    RolePermissionResponse,
    RoleResponse,
)
from auth.dependencies import authorize, get_container

router = APIRouter(dependencies=[Depends(authorize)])


@router.get("/role-permissions/permissions/{permission_id}/roles", response_model=Page[RoleResponse])
def permission_roles(
    request: Request,
    permission_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Page[RoleResponse]:
    roles, total = get_container(request).graph.permission_roles(permission_id, page, limit)
    return Page[RoleResponse](items=[RoleResponse.from_role(r) for r in roles], total=total, page=page, limit=limit)


@router.get("/role-permissions/{role_id}/permissions", response_model=Page[PermissionResponse])
def role_permissions(
    request: Request,
    role_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Page[PermissionResponse]:
    permissions, total = get_container(request).graph.role_permissions(role_id, page, limit)
    return Page[PermissionResponse](
        items=[PermissionResponse.from_permission(p) for p in permissions],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("/role-permissions/{role_id}/permissions", response_model=AssignPermissionsResponse)
def assign_permissions(request: Request, role_id: int, body: PermissionIdsRequest) -> AssignPermissionsResponse:
    assigned = get_container(request).graph.assign(role_id, body.permission_ids)
    return AssignPermissionsResponse(role_id=role_id, requested=len(set(body.permission_ids)), assigned=assigned)


@router.put("/role-permissions/{role_id}/permissions", response_model=AssignPermissionsResponse)
def replace_permissions(request: Request, role_id: int, body: PermissionIdsRequest) -> AssignPermissionsResponse:
    assigned = get_container(request).graph.replace(role_id, body.permission_ids)
    return AssignPermissionsResponse(role_id=role_id, requested=len(set(body.permission_ids)), assigned=assigned)


@router.delete("/role-permissions/{role_id}/permissions", status_code=204)
def remove_permissions(request: Request, role_id: int, body: PermissionIdsRequest) -> Response:
    container = get_container(request)
    container.roles.find_by_id(role_id)
    container.graph.revoke(role_id, body.permission_ids)
    return Response(status_code=204)


@router.get("/role-permissions/{role_id}/permissions/effective", response_model=list[PermissionResponse])
def effective_permissions(request: Request, role_id: int) -> list[PermissionResponse]:
    container = get_container(request)
    role = container.roles.find_by_id(role_id)
    return [PermissionResponse.from_permission(p) for p in container.graph.effective_permissions([role.name])]


@router.get(
    "/role-permissions/{role_id}/permissions/{permission_id}/check",
    response_model=PermissionCheckResponse,
)
def check_permission(request: Request, role_id: int, permission_id: int) -> PermissionCheckResponse:
    container = get_container(request)
    container.roles.find_by_id(role_id)
    container.catalog.get_permission(permission_id)
    return PermissionCheckResponse(
        role_id=role_id,
        permission_id=permission_id,
        has_permission=container.graph.has_permission(role_id, permission_id),
    )


@router.get("/role-permissions/{assignment_id}", response_model=RolePermissionResponse)
def get_assignment(request: Request, assignment_id: int) -> RolePermissionResponse:
    return RolePermissionResponse.from_record(get_container(request).graph.get_assignment(assignment_id))


@router.delete("/role-permissions/{assignment_id}", status_code=204)
def remove_assignment(request: Request, assignment_id: int) -> Response:
    get_container(request).graph.remove_assignment(assignment_id)
    return Response(status_code=204)
