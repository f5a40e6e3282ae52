"""Admin API — user management.

Learn: Mounted with require_admin, so every route here is 401 for
anonymous callers and 403 for regular users. Deactivating a user also
revokes all of their refresh sessions; their current access token
stops working at once because authentication re-reads the user row.
"""

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.auth.dependencies import require_admin
from quarry.db.engine import get_db
from quarry.db.models import ROLE_ADMIN
from quarry.schemas.auth import UserAdminUpdate, UserPublic
from quarry.services.session_store import SessionStore
from quarry.services.user_service import UserService

logger = structlog.get_logger()

router = APIRouter(prefix="/admin")


@router.get("/users", response_model=list[UserPublic])
async def list_users(db: AsyncSession = Depends(get_db)):
    """All accounts, oldest first."""
    return await UserService(db).list_users()


@router.patch("/users/{user_id}", response_model=UserPublic)
async def update_user(
    user_id: uuid.UUID,
    body: UserAdminUpdate,
    admin: UserPublic = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Change a user's role and/or active flag."""
    if user_id == admin.id and (
        (body.role is not None and body.role != ROLE_ADMIN)
        or body.is_active is False
    ):
        raise HTTPException(
            status_code=400, detail="You cannot demote or deactivate yourself"
        )

    users = UserService(db)
    user = await users.get(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    await users.update(user, role=body.role, is_active=body.is_active)
    revoked = 0
    if body.is_active is False:
        revoked = await SessionStore(db).revoke_all(user.id)
    await db.commit()

    logger.info(
        "admin.user_updated",
        user_id=str(user.id),
        by=str(admin.id),
        role=body.role,
        is_active=body.is_active,
        sessions_revoked=revoked,
    )
    return user


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    admin: UserPublic = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete a user and everything they own."""
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot delete yourself")

    users = UserService(db)
    user = await users.get(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    await users.delete(user)
    return {"deleted": True}
