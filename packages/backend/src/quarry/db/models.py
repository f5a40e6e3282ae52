"""Database schema: accounts, refresh sessions, provider overrides, chats.

Learn: SQLAlchemy 2.0 typed mapping (Mapped[] + mapped_column). The same
models run on Postgres in production and SQLite in tests, so only portable
column types are used (Uuid, JSON that becomes JSONB on Postgres).

User ids are UUIDs: opaque, and safe to embed in tokens. Every row owned
by a user carries ON DELETE CASCADE on its foreign key, and the ORM
relationship cascades too, so deleting a user never leaves dangling
sessions, configs, chats or messages behind.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on Postgres, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_USER)

EMAIL_MAX_LEN = 255
NAME_MAX_LEN = 100


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


# ══════════════════════════════════════════════════════════════
# Accounts
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A person with an account.

    Learn: email is stored lower-cased so the unique constraint doubles
    as a case-insensitive uniqueness check. password_hash never leaves
    the service layer — API responses use schemas.auth.UserPublic.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LEN), unique=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(NAME_MAX_LEN), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ROLE_USER, server_default=ROLE_USER
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    # Owned rows — removed with the user
    sessions: Mapped[list["Session"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    config: Mapped[Optional["UserConfig"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    chats: Mapped[list["Chat"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )


class Session(Base):
    """One issued refresh token.

    Learn: A row exists for every refresh token that may still be
    exchanged. Rotation deletes the row, logout deletes the row, and an
    expired row is deleted the first time someone presents it.
    """

    __tablename__ = "sessions"
    __table_args__ = (
        Index("idx_sessions_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    refresh_token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="sessions")


class UserConfig(Base):
    """Per-user provider/model overrides. At most one row per user.

    Learn: custom_openai_base_url / custom_openai_key predate the nested
    providers.CUSTOM_OPENAI entry. Both are still read; the nested entry
    wins when both are set (see services.config_resolver).
    """

    __tablename__ = "user_configs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    providers: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    models: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    custom_openai_base_url: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True
    )
    custom_openai_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    user: Mapped["User"] = relationship(back_populates="config")


# ══════════════════════════════════════════════════════════════
# Conversations
# ══════════════════════════════════════════════════════════════


class Chat(Base):
    """A search conversation owned by one user."""

    __tablename__ = "chats"
    __table_args__ = (
        Index("idx_chats_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    focus_mode: Mapped[str] = mapped_column(String(50), nullable=False)
    files: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="chats")
    messages: Mapped[list["Message"]] = relationship(
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.id",
    )


class Message(Base):
    """A single turn in a chat.

    Learn: user_id is nullable because messages written before accounts
    existed have no owner. `quarry adopt-orphans` assigns them to an admin.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_chat", "chat_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False
    )
    message_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # assistant | user
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata", JSONType, nullable=True
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )

    chat: Mapped["Chat"] = relationship(back_populates="messages")
