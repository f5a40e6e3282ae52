"""Auth API — registration, login, token refresh, logout.

Learn: Routes for the credential lifecycle:
- POST /auth/register → create an account, returns tokens (201)
- POST /auth/login → email/password → tokens
- POST /auth/refresh → refresh token → new pair (old one is spent)
- POST /auth/logout → revoke refresh token, clear cookies
- GET /auth/me → current user info

Token responses carry the pair in the JSON body AND set httpOnly cookies,
so both API clients and browsers are served by the same endpoints. The
refresh token can come from the body or from the refresh_token cookie.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.auth.cookies import (
    LEGACY_REFRESH_COOKIE,
    REFRESH_COOKIE,
    clear_auth_cookies,
    set_auth_cookies,
)
from quarry.auth.dependencies import get_current_user
from quarry.auth.errors import AuthenticationFailed, Conflict, InvalidInput
from quarry.db.engine import get_db
from quarry.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    UserPublic,
)
from quarry.services.auth_service import AuthResult, AuthService

router = APIRouter(prefix="/auth")


def _auth_svc(db: AsyncSession = Depends(get_db)) -> AuthService:
    return AuthService(db)


def _respond(result: AuthResult, response: Response) -> AuthResponse:
    set_auth_cookies(response, result.access_token, result.refresh_token)
    return AuthResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
        user=result.user,
    )


def _unauthorized(e: AuthenticationFailed) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=e.message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _refresh_token_from(request: Request, body: Optional[RefreshRequest]) -> Optional[str]:
    if body and body.refresh_token:
        return body.refresh_token
    return request.cookies.get(REFRESH_COOKIE) or request.cookies.get(
        LEGACY_REFRESH_COOKIE
    )


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    svc: AuthService = Depends(_auth_svc),
):
    """Create a new user account. The first account becomes admin."""
    try:
        result = await svc.register(body.email, body.password, body.name)
    except InvalidInput as e:
        raise HTTPException(
            status_code=400,
            detail={"message": e.message, "errors": e.errors},
        )
    except Conflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _respond(result, response)


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    svc: AuthService = Depends(_auth_svc),
):
    """Login with email and password → tokens."""
    try:
        result = await svc.login(body.email, body.password)
    except AuthenticationFailed as e:
        raise _unauthorized(e)
    return _respond(result, response)


# ─── Refresh ────────────────────────────────────────────


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    svc: AuthService = Depends(_auth_svc),
):
    """Exchange a refresh token for a new pair. Each token works once."""
    try:
        result = await svc.refresh(_refresh_token_from(request, body))
    except AuthenticationFailed as e:
        raise _unauthorized(e)
    return _respond(result, response)


# ─── Logout ─────────────────────────────────────────────


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    svc: AuthService = Depends(_auth_svc),
):
    """Revoke the refresh token and clear auth cookies. Always succeeds."""
    await svc.logout(_refresh_token_from(request, body))
    clear_auth_cookies(response)
    return {"success": True}


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=UserPublic)
async def get_me(user: UserPublic = Depends(get_current_user)):
    """Get the current authenticated user's info."""
    return user
