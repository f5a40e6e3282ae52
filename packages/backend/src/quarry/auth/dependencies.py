"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to resolve the
current user from the request. Three modes:

1. get_current_user_optional → UserPublic or None, never rejects
2. get_current_user          → 401 if nobody is logged in
3. require_admin             → 401 as above, then 403 unless role == admin

The token only says who the caller claims to be. The user row is read
on every request, so a deactivated account is locked out immediately
even though its access token has not expired yet.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.auth.cookies import ACCESS_COOKIE, LEGACY_ACCESS_COOKIE
from quarry.auth.jwt import verify_access_token
from quarry.db.engine import get_db
from quarry.db.models import ROLE_ADMIN
from quarry.schemas.auth import UserPublic
from quarry.services.user_service import UserService


def get_token_from_request(request: Request) -> Optional[str]:
    """Bearer header first, then the access-token cookie."""
    authorization = request.headers.get("authorization")
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token:
            return token

    return (
        request.cookies.get(ACCESS_COOKIE)
        or request.cookies.get(LEGACY_ACCESS_COOKIE)
        or None
    )


async def authenticate_request(
    request: Request, db: AsyncSession
) -> Optional[UserPublic]:
    """Resolve the request to an active user, or None. Never raises for bad tokens."""
    token = get_token_from_request(request)
    if not token:
        return None

    claims = verify_access_token(token)
    if claims is None:
        return None

    user = await UserService(db).get(claims.user_id)
    if user is None or not user.is_active:
        return None

    return UserPublic.model_validate(user)


async def get_current_user_optional(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[UserPublic]:
    """Current user if authenticated, else None."""
    return await authenticate_request(request, db)


async def get_current_user(
    user: Optional[UserPublic] = Depends(get_current_user_optional),
) -> UserPublic:
    """Current user (required — 401 if no valid access token)."""
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(
    user: UserPublic = Depends(get_current_user),
) -> UserPublic:
    """Current user, who must be an admin (403 otherwise)."""
    if user.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
