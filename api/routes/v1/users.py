"""
api/routes/v1/users.py -- Principal read endpoints.

Routes:
  GET /api/v1/users             -- paginated principal list     (user:list)
  GET /api/v1/users/profile     -- the caller's own record      (user:profile)
  GET /api/v1/users/{user_id}   -- one principal by external id (user:detail)

/users/profile is declared before /users/{user_id} so the literal path wins
in FastAPI's router; the permission catalog resolves the same overlap by
specificity.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import Page, UserResponse
from auth.dependencies import authorize, get_container
from auth.models import Claims
from core.errors import NotFoundError

router = APIRouter()


@router.get("/users", response_model=Page[UserResponse], dependencies=[Depends(authorize)])
def list_users(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Page[UserResponse]:
    principals, total = get_container(request).principals.list_principals(page, limit)
    return Page[UserResponse](
        items=[UserResponse.from_principal(p) for p in principals],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/users/profile", response_model=UserResponse)
def profile(request: Request, claims: Claims = Depends(authorize)) -> UserResponse:
    return UserResponse.from_principal(get_container(request).auth.get_principal(claims.sub))


@router.get("/users/{user_id}", response_model=UserResponse, dependencies=[Depends(authorize)])
def get_user(request: Request, user_id: str) -> UserResponse:
    principal = get_container(request).principals.find_by_external_id(user_id)
    if principal is None:
        raise NotFoundError("User not found.", code="user_not_found", detail=user_id)
    return UserResponse.from_principal(principal)
