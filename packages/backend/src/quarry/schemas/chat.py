"""Pydantic schemas for chats and messages."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class MessageRead(BaseModel):
    id: int
    message_id: str
    content: str
    role: str
    meta: Optional[dict[str, Any]] = None

    model_config = {"from_attributes": True}


class ChatRead(BaseModel):
    id: str
    title: str
    focus_mode: str
    files: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime

    model_config = {"from_attributes": True}


class ChatDetail(ChatRead):
    messages: list[MessageRead] = Field(default_factory=list)
