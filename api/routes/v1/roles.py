"""
api/routes/v1/roles.py -- Role CRUD.

Routes:
  GET    /api/v1/roles              -- paginated list, optional ?search=  (role:list)
  GET    /api/v1/roles/{role_id}    -- detail                             (role:detail)
  POST   /api/v1/roles              -- create                             (role:create)
  PUT    /api/v1/roles/{role_id}    -- rename / re-describe               (role:update)
  DELETE /api/v1/roles/{role_id}    -- 409 role_in_use while assigned     (role:delete)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import Page, RoleCreate, RoleResponse, RoleUpdate
from auth.dependencies import authorize, get_container

router = APIRouter(dependencies=[Depends(authorize)])


@router.get("/roles", response_model=Page[RoleResponse])
def list_roles(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=50),
) -> Page[RoleResponse]:
    roles, total = get_container(request).roles.list_roles(page, limit, search)
    return Page[RoleResponse](items=[RoleResponse.from_role(r) for r in roles], total=total, page=page, limit=limit)


@router.get("/roles/{role_id}", response_model=RoleResponse)
def get_role(request: Request, role_id: int) -> RoleResponse:
    return RoleResponse.from_role(get_container(request).roles.find_by_id(role_id))


@router.post("/roles", response_model=RoleResponse, status_code=201)
def create_role(request: Request, body: RoleCreate) -> RoleResponse:
    role = get_container(request).roles.register_role(body.name, body.description)
    return RoleResponse.from_role(role)


@router.put("/roles/{role_id}", response_model=RoleResponse)
def update_role(request: Request, role_id: int, body: RoleUpdate) -> RoleResponse:
    role = get_container(request).roles.update_role(role_id, body.name, body.description)
    return RoleResponse.from_role(role)


@router.delete("/roles/{role_id}", status_code=204)
def delete_role(request: Request, role_id: int) -> Response:
    get_container(request).roles.delete_role(role_id)
    return Response(status_code=204)
