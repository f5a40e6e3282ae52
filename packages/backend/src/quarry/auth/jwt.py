"""JWT token creation and verification.

Learn: Two token classes, each with its own secret and lifetime:
- Access token: short-lived (15 min), sent with every API call
- Refresh token: long-lived (7 days), exchanged for a new pair

Separate secrets mean a leaked access token can never be replayed as a
refresh token, and either secret can be rotated on its own. The "type"
claim is checked as well, as a second line of defence.

Both carry the same minimal claim set (user id, email, role). Claims are
decoded into TokenClaims and rejected if anything is missing — callers
never see a half-populated payload.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from quarry.config import settings
from quarry.db.models import ROLES

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried inside a token. Not a substitute for the user row."""

    user_id: uuid.UUID
    email: str
    role: str


def _encode(claims: TokenClaims, token_type: str, secret: str, ttl: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(claims.user_id),
        "email": claims.email,
        "role": claims.role,
        "type": token_type,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def _decode(token: str, token_type: str, secret: str) -> Optional[TokenClaims]:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub", "type"]},
        )
    except jwt.InvalidTokenError:
        return None

    if payload.get("type") != token_type:
        return None

    email = payload.get("email")
    role = payload.get("role")
    if not isinstance(email, str) or role not in ROLES:
        return None
    try:
        user_id = uuid.UUID(payload["sub"])
    except (ValueError, TypeError, AttributeError):
        return None

    return TokenClaims(user_id=user_id, email=email, role=role)


def create_access_token(claims: TokenClaims) -> str:
    """Create a JWT access token."""
    return _encode(
        claims,
        ACCESS,
        settings.jwt_access_secret,
        timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(claims: TokenClaims) -> str:
    """Create a JWT refresh token."""
    return _encode(
        claims,
        REFRESH,
        settings.jwt_refresh_secret,
        timedelta(days=settings.refresh_token_expire_days),
    )


def verify_access_token(token: str) -> Optional[TokenClaims]:
    """Decode an access token. None on bad signature, expiry, or shape."""
    return _decode(token, ACCESS, settings.jwt_access_secret)


def verify_refresh_token(token: str) -> Optional[TokenClaims]:
    """Decode a refresh token. None on bad signature, expiry, or shape."""
    return _decode(token, REFRESH, settings.jwt_refresh_secret)
