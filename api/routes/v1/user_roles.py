"""
api/routes/v1/user_roles.py -- Principal <-> Role assignment endpoints.

Routes:
  POST   /api/v1/user-roles/assign                      -- assign a role (idempotent)
  DELETE /api/v1/user-roles/{user_id}/{role_id}         -- remove a role
  GET    /api/v1/user-roles/user/{user_id}              -- a principal's assignments
  GET    /api/v1/user-roles/role/{role_id}/users        -- principals holding a role
  GET    /api/v1/user-roles/check/{user_id}/{role_id}   -- does the principal hold the role
  GET    /api/v1/user-roles/role/{role_id}/stats        -- total / active holders

user_id is always the principal's external id. Any assignment change makes
the principal's outstanding access tokens fail with roles_changed.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    AssignRoleRequest,
    Page,
    RoleStatsResponse,
    UserResponse,
    UserRoleCheckResponse,
    UserRoleResponse,
)
from auth.dependencies import authorize, get_container
from auth.models import Claims
from core.errors import NotFoundError

router = APIRouter()


@router.post("/user-roles/assign", response_model=UserRoleResponse, status_code=201)
def assign_role(request: Request, body: AssignRoleRequest, claims: Claims = Depends(authorize)) -> UserRoleResponse:
    assignment = get_container(request).assignments.assign_role(body.user_id, body.role_id, assigned_by=claims.sub)
    return UserRoleResponse.from_assignment(assignment, body.user_id)


@router.delete("/user-roles/{user_id}/{role_id}", status_code=204, dependencies=[Depends(authorize)])
def remove_role(request: Request, user_id: str, role_id: int) -> Response:
    if not get_container(request).assignments.remove_role(user_id, role_id):
        raise NotFoundError("User role assignment not found.", detail=f"{user_id}/{role_id}")
    return Response(status_code=204)


@router.get("/user-roles/user/{user_id}", response_model=list[UserRoleResponse], dependencies=[Depends(authorize)])
def user_roles(request: Request, user_id: str) -> list[UserRoleResponse]:
    container = get_container(request)
    if container.principals.find_by_external_id(user_id) is None:
        raise NotFoundError("User not found.", code="user_not_found", detail=user_id)
    return [UserRoleResponse.from_assignment(a, user_id) for a in container.assignments.roles_for(user_id)]


@router.get("/user-roles/role/{role_id}/users", response_model=Page[UserResponse], dependencies=[Depends(authorize)])
def role_users(
    request: Request,
    role_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Page[UserResponse]:
    users, total = get_container(request).assignments.role_users(role_id, page, limit)
    return Page[UserResponse](
        items=[UserResponse.from_principal(u) for u in users],
        total=total,
        page=page,
        limit=limit,
    )


@router.get(
    "/user-roles/check/{user_id}/{role_id}",
    response_model=UserRoleCheckResponse,
    dependencies=[Depends(authorize)],
)
def check_user_role(request: Request, user_id: str, role_id: int) -> UserRoleCheckResponse:
    has_role = get_container(request).assignments.user_has_role(user_id, role_id)
    return UserRoleCheckResponse(user_id=user_id, role_id=role_id, has_role=has_role)


@router.get("/user-roles/role/{role_id}/stats", response_model=RoleStatsResponse, dependencies=[Depends(authorize)])
def role_stats(request: Request, role_id: int) -> RoleStatsResponse:
    return RoleStatsResponse(role_id=role_id, **get_container(request).assignments.role_stats(role_id))
