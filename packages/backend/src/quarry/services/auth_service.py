"""Auth service — registration, login, token refresh, logout.

Learn: This is the credential lifecycle state machine:

    register ──┐
    login ─────┼──→ issue ──→ (access token, refresh token + session row)
    refresh ───┘      ↑
       │              │
       └─ rotate old session ─┘
    logout ──→ revoke session

Every path that hands out tokens goes through issue(), which reads the
claims from the user row as it is *now*. A role change therefore shows
up in the next refreshed pair, never earlier and never later.

Error messages for authentication failures are identical for every
cause (see auth.errors) so the API can't be used to enumerate accounts.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.auth.errors import Conflict, InvalidCredentials, InvalidInput, InvalidToken
from quarry.auth.jwt import TokenClaims, create_access_token, verify_refresh_token
from quarry.auth.password import (
    burn_verify,
    hash_password,
    normalize_email,
    validate_account_fields,
    validate_password,
    verify_password,
)
from quarry.config import settings
from quarry.db.models import ROLE_ADMIN, ROLE_USER, User
from quarry.schemas.auth import UserPublic
from quarry.services.session_store import SessionStore
from quarry.services.user_service import UserService

logger = structlog.get_logger()


@dataclass
class AuthResult:
    """Everything a client needs after a successful login/refresh."""
    access_token: str
    refresh_token: str
    user: UserPublic
    expires_in: int
    refresh_expires_at: datetime


def claims_for(user: User) -> TokenClaims:
    return TokenClaims(user_id=user.id, email=user.email, role=user.role)


class AuthService:
    """Orchestrates hasher, token codec, session store and user repository."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserService(db)
        self.sessions = SessionStore(db)

    # ─── Register ────────────────────────────────────────

    async def register(self, email: str, password: str, name: str) -> AuthResult:
        """Create an account and log it in.

        Learn: The very first account becomes admin, so a fresh install
        can be administered without a seeding step.
        """
        email = normalize_email(email or "")
        name = (name or "").strip()
        if not email or not password or not name:
            raise InvalidInput(
                ["Email, password, and name are required"],
                message="Missing required fields",
            )

        errors = validate_account_fields(email, name)
        errors.extend(validate_password(password))
        if errors:
            raise InvalidInput(errors, message="Registration details are invalid")

        if await self.users.get_by_email(email):
            raise Conflict("User with this email already exists")

        role = ROLE_ADMIN if await self.users.count() == 0 else ROLE_USER
        try:
            user = await self.users.create(
                email=email,
                name=name,
                password_hash=hash_password(password),
                role=role,
            )
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            await self.db.rollback()
            raise Conflict("User with this email already exists")

        logger.info("auth.registered", user_id=str(user.id), role=role)
        return await self.issue(user)

    # ─── Login ───────────────────────────────────────────

    async def login(self, email: str, password: str) -> AuthResult:
        user = await self.users.get_by_email(normalize_email(email or ""))
        if user is None:
            burn_verify(password or "")
            logger.info("auth.login_failed", reason="unknown_email")
            raise InvalidCredentials()

        if not verify_password(password or "", user.password_hash):
            logger.info("auth.login_failed", user_id=str(user.id), reason="password")
            raise InvalidCredentials()
        if not user.is_active:
            logger.info("auth.login_failed", user_id=str(user.id), reason="inactive")
            raise InvalidCredentials()

        logger.info("auth.login", user_id=str(user.id))
        return await self.issue(user)

    # ─── Issue ───────────────────────────────────────────

    async def issue(self, user: User) -> AuthResult:
        """Mint an access/refresh pair and persist the refresh session."""
        claims = claims_for(user)
        access_token = create_access_token(claims)
        issued = await self.sessions.create(claims)
        await self.db.commit()

        return AuthResult(
            access_token=access_token,
            refresh_token=issued.refresh_token,
            user=UserPublic.model_validate(user),
            expires_in=settings.access_token_expire_minutes * 60,
            refresh_expires_at=issued.expires_at,
        )

    # ─── Refresh ─────────────────────────────────────────

    async def refresh(self, refresh_token: Optional[str]) -> AuthResult:
        """Exchange a refresh token for a new pair (single use).

        Learn: The token must verify cryptographically AND still have a
        live session row AND belong to an active user. The old session is
        deleted before the new one is written, which makes every
        refresh token single-use.
        """
        claims = verify_refresh_token(refresh_token) if refresh_token else None
        if claims is None:
            logger.info("auth.refresh_rejected", reason="token")
            raise InvalidToken()

        session = await self.sessions.validate(refresh_token, claims.user_id)
        if session is None:
            await self.db.commit()  # keep any expired-row cleanup
            logger.info(
                "auth.refresh_rejected",
                user_id=str(claims.user_id),
                reason="session",
            )
            raise InvalidToken()

        user = await self.users.get(claims.user_id)
        if user is None or not user.is_active:
            logger.info(
                "auth.refresh_rejected",
                user_id=str(claims.user_id),
                reason="user",
            )
            raise InvalidToken()

        await self.sessions.rotate(session.id)
        result = await self.issue(user)
        logger.info("auth.refreshed", user_id=str(user.id))
        return result

    # ─── Logout ──────────────────────────────────────────

    async def logout(self, refresh_token: Optional[str]) -> None:
        """Revoke a refresh token. Succeeds even if it was already gone."""
        if not refresh_token:
            return
        removed = await self.sessions.revoke(refresh_token)
        await self.db.commit()
        logger.info("auth.logout", sessions_removed=removed)
