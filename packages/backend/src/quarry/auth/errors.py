"""Auth error taxonomy.

Learn: Services raise these; the route layer maps them to HTTP status
codes. InvalidCredentials and InvalidToken share a base class and a
message, so a client can never tell "no such email" from
"wrong password" or "expired session" from "forged token".
"""

from typing import Optional


class AuthError(Exception):
    """Base class for auth service errors."""


class InvalidInput(AuthError):
    """Caller-correctable input problem (missing field, weak password).

    Carries every problem found, so the client can show them all at once.
    """

    def __init__(self, errors: list[str], message: Optional[str] = None):
        self.errors = errors
        self.message = message or "Invalid input"
        super().__init__(self.message)


class Conflict(AuthError):
    """The email address is already registered."""


class AuthenticationFailed(AuthError):
    """Generic unauthorized outcome."""

    message = "Invalid credentials"

    def __init__(self):
        super().__init__(self.message)


class InvalidCredentials(AuthenticationFailed):
    """Unknown email, wrong password, or inactive account."""


class InvalidToken(AuthenticationFailed):
    """Refresh token forged, expired, revoked, or its user is gone."""
