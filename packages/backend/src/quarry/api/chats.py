"""Chats API — a user's own conversations.

Learn: Chats are only ever looked up together with the caller's id, so
another user's chat id simply returns 404.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.auth.dependencies import get_current_user
from quarry.db.engine import get_db
from quarry.schemas.auth import UserPublic
from quarry.schemas.chat import ChatDetail, ChatRead
from quarry.services.chat_service import ChatService

router = APIRouter(prefix="/chats")


def _chat_svc(db: AsyncSession = Depends(get_db)) -> ChatService:
    return ChatService(db)


@router.get("", response_model=list[ChatRead])
async def list_chats(
    user: UserPublic = Depends(get_current_user),
    svc: ChatService = Depends(_chat_svc),
):
    return await svc.list_chats(user.id)


@router.get("/{chat_id}", response_model=ChatDetail)
async def get_chat(
    chat_id: str,
    user: UserPublic = Depends(get_current_user),
    svc: ChatService = Depends(_chat_svc),
):
    chat = await svc.get_chat(chat_id, user.id)
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


@router.delete("/{chat_id}")
async def delete_chat(
    chat_id: str,
    user: UserPublic = Depends(get_current_user),
    svc: ChatService = Depends(_chat_svc),
):
    if not await svc.delete_chat(chat_id, user.id):
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"deleted": True}
