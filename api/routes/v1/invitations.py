"""
api/routes/v1/invitations.py -- Invitation tokens for REGISTRATION_MODE=invitation.

Routes:
  POST /api/v1/invitation-tokens   -- create (ADMIN only)
  GET  /api/v1/invitation-tokens   -- list all (ADMIN only)

Both routes pass through authorize; InvitationService additionally insists
on the ADMIN role, so granting invitationToken:create to another role is not
enough on its own.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import InvitationCreate, InvitationResponse
from auth.dependencies import authorize, get_container
from auth.models import Claims

router = APIRouter()


@router.post("/invitation-tokens", response_model=InvitationResponse, status_code=201)
def create_invitation(
    request: Request,
    body: InvitationCreate | None = None,
    claims: Claims = Depends(authorize),
) -> InvitationResponse:
    hours = body.expires_in_hours if body is not None else InvitationCreate().expires_in_hours
    invitation = get_container(request).invitations.create(claims.sub, claims.roles, hours)
    return InvitationResponse.from_invitation(invitation)


@router.get("/invitation-tokens", response_model=list[InvitationResponse])
def list_invitations(request: Request, claims: Claims = Depends(authorize)) -> list[InvitationResponse]:
    return [InvitationResponse.from_invitation(i) for i in get_container(request).invitations.list(claims.roles)]
