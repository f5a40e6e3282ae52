"""Session store — persistence of issued refresh tokens.

Learn: A refresh token is only worth something while its row exists.
That makes the sessions table the single place revocation happens:
- rotate() deletes the row of a token that was just exchanged
- revoke() deletes the row of a token that was logged out
- validate() deletes a row it finds expired (lazy cleanup, no sweeper)

Rotation is delete-then-insert. If two refreshes race on the same token,
both deletes succeed (the second is a no-op) and each caller gets a new
pair; no lock is needed.

The store only flushes. The calling service owns the transaction.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.auth.jwt import TokenClaims, create_refresh_token
from quarry.config import settings
from quarry.db.models import Session, utcnow

logger = structlog.get_logger()


@dataclass
class IssuedSession:
    session_id: uuid.UUID
    refresh_token: str
    expires_at: datetime


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionStore:
    """Refresh-token sessions backed by the `sessions` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, claims: TokenClaims) -> IssuedSession:
        """Mint a refresh token for `claims` and persist its session row."""
        refresh_token = create_refresh_token(claims)
        expires_at = utcnow() + timedelta(days=settings.refresh_token_expire_days)
        session = Session(
            user_id=claims.user_id,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )
        self.db.add(session)
        await self.db.flush()
        return IssuedSession(
            session_id=session.id,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

    async def validate(
        self, refresh_token: str, user_id: uuid.UUID
    ) -> Optional[Session]:
        """Return the live session for this exact token+user, else None.

        An expired match is deleted before returning None.
        """
        result = await self.db.execute(
            select(Session).where(
                Session.refresh_token == refresh_token,
                Session.user_id == user_id,
            )
        )
        session = result.scalars().first()
        if session is None:
            return None

        if _as_utc(session.expires_at) <= utcnow():
            await self.db.delete(session)
            await self.db.flush()
            logger.info(
                "session.expired_pruned",
                session_id=str(session.id),
                user_id=str(user_id),
            )
            return None

        return session

    async def rotate(self, session_id: uuid.UUID) -> None:
        """Retire a session whose token was just exchanged."""
        await self.db.execute(delete(Session).where(Session.id == session_id))

    async def revoke(self, refresh_token: str) -> int:
        """Delete the session for a token. Unknown tokens are fine."""
        result = await self.db.execute(
            delete(Session).where(Session.refresh_token == refresh_token)
        )
        return result.rowcount or 0

    async def revoke_all(self, user_id: uuid.UUID) -> int:
        """Delete every session belonging to a user."""
        result = await self.db.execute(
            delete(Session).where(Session.user_id == user_id)
        )
        return result.rowcount or 0
