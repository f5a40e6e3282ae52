"""Chat service — conversations scoped to their owner.

Learn: Every query filters on user_id. A chat that exists but belongs to
someone else is indistinguishable from one that doesn't exist (both are
None here, 404 at the API).
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from quarry.db.models import Chat, Message

logger = structlog.get_logger()


class ChatService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_chats(self, user_id: uuid.UUID) -> list[Chat]:
        result = await self.db.execute(
            select(Chat)
            .where(Chat.user_id == user_id)
            .order_by(Chat.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_chat(self, chat_id: str, user_id: uuid.UUID) -> Optional[Chat]:
        """An owned chat with its messages loaded."""
        result = await self.db.execute(
            select(Chat)
            .where(Chat.id == chat_id, Chat.user_id == user_id)
            .options(selectinload(Chat.messages))
        )
        return result.scalars().first()

    async def delete_chat(self, chat_id: str, user_id: uuid.UUID) -> bool:
        chat = await self.get_chat(chat_id, user_id)
        if chat is None:
            return False
        await self.db.delete(chat)
        await self.db.commit()
        logger.info("chat.deleted", chat_id=chat_id, user_id=str(user_id))
        return True

    async def adopt_orphan_messages(self, owner_id: uuid.UUID) -> int:
        """Assign every message without an owner to `owner_id`."""
        result = await self.db.execute(
            update(Message)
            .where(Message.user_id.is_(None))
            .values(user_id=owner_id)
        )
        await self.db.commit()
        return result.rowcount or 0
