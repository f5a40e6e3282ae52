"""Pydantic schemas for accounts and tokens.

Learn: UserPublic is the only shape a user ever leaves the API in.
It is built from the ORM row with from_attributes, and simply has no
password_hash field, so the hash cannot leak by accident.
"""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


# ─── Requests ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    """Body for /auth/refresh and /auth/logout. Cookie is used if absent."""
    refresh_token: Optional[str] = None


# ─── Responses ────────────────────────────────────────────


class UserPublic(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    role: Literal["admin", "user"]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # access token lifetime, seconds
    user: UserPublic


# ─── Admin ────────────────────────────────────────────────


class UserAdminUpdate(BaseModel):
    role: Optional[Literal["admin", "user"]] = None
    is_active: Optional[bool] = None
