"""User repository — reads and writes of user rows.

Learn: Kept separate from AuthService so the admin routes and the CLI
can manage users without going through the token machinery.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.db.models import ROLE_USER, User

logger = structlog.get_logger()


class UserService:
    """Lookup and lifecycle of user accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        """Find a user by (already normalized) email."""
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def count(self) -> int:
        result = await self.db.execute(select(func.count(User.id)))
        return result.scalar_one()

    async def list_users(self) -> list[User]:
        result = await self.db.execute(select(User).order_by(User.created_at))
        return list(result.scalars().all())

    async def create(
        self,
        email: str,
        name: str,
        password_hash: str,
        role: str = ROLE_USER,
    ) -> User:
        """Insert a user and flush (unique-email violations raise here)."""
        user = User(
            email=email,
            name=name,
            password_hash=password_hash,
            role=role,
            is_active=True,
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def update(
        self,
        user: User,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> User:
        """Change role and/or active flag. Caller commits."""
        if role is not None:
            user.role = role
        if is_active is not None:
            user.is_active = is_active
        await self.db.flush()
        return user

    async def delete(self, user: User) -> None:
        """Delete a user. Sessions, config, chats and messages cascade."""
        user_id = str(user.id)
        await self.db.delete(user)
        await self.db.commit()
        logger.info("user.deleted", user_id=user_id)
