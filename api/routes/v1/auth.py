"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/login             -- email/password login; returns a token pair
  POST /api/v1/auth/register          -- create an account (REGISTRATION_MODE decides who may)
  POST /api/v1/auth/refresh           -- exchange a refresh token for a new pair
  POST /api/v1/auth/logout            -- blacklist the access (and optional refresh) token
  POST /api/v1/auth/forgot-password   -- always 200; emails a reset link if the account exists
  POST /api/v1/auth/reset-password    -- single-use reset token + new password
  GET  /api/v1/auth/me                -- identity from the verified access token

Security:
  POST /login and /forgot-password are rate-limited per IP (LOGIN_RATE_LIMIT).
  AuthService.login() provides timing equalization -- never inline the lookup.
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import authenticate, get_container, header_token
from auth.models import Claims, TokenPair
from core.errors import BadRequestError

# Auth policy:
# - POST /auth/login, /register, /refresh, /logout, /forgot-password, /reset-password: public
# - GET /auth/me: authenticated (any role)
router = APIRouter()


def _no_store(payload: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=payload)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _token_fields(pair: TokenPair) -> dict:
    return {
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "expires_in": pair.access_expires_in,
        "refresh_expires_in": pair.refresh_expires_in,
    }


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Wrong email, wrong password and inactive account all return the same
    401 invalid_credentials so the response does not reveal which one it was.
    """
    principal, pair = get_container(request).auth.login(body.email, body.password)
    payload = LoginResponse(**_token_fields(pair), user=UserResponse.from_principal(principal))
    return _no_store(payload.model_dump())


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    principal = get_container(request).auth.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        invitation_token=body.invitation_token,
    )
    return UserResponse.from_principal(principal)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Issue a new token pair. The presented refresh token stays valid."""
    pair = get_container(request).auth.refresh(body.refresh_token)
    return _no_store(TokenResponse(**_token_fields(pair)).model_dump())


@limiter.limit(login_limit)
@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    get_container(request).auth.forgot_password(body.email)
    return MessageResponse(message="If the email exists, a password reset link has been sent.")


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    if not get_container(request).auth.reset_password(body.token, body.new_password):
        raise BadRequestError("Invalid or expired reset token.", code="invalid_reset_token")
    return MessageResponse(message="Password has been reset successfully.")


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, body: LogoutRequest | None = None) -> MessageResponse:
    """Blacklist the bearer access token and, if supplied, the refresh token.

    The token is decoded but not verified, so an expired or role-changed
    session can still be closed.
    """
    token = header_token(request)
    if token is None:
        raise BadRequestError("Access token required.", code="missing_token")
    refresh_token = body.refresh_token if body is not None else None
    get_container(request).auth.logout(token, refresh_token)
    return MessageResponse(message="Logged out.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(claims: Claims = Depends(authenticate)) -> MeResponse:
    """Return identity information carried by the current access token."""
    return MeResponse(id=claims.sub, email=claims.email, roles=claims.roles, expires_at=claims.exp)
