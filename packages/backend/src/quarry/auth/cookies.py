"""Auth cookies.

Learn: Browsers get both tokens as httpOnly cookies so page scripts
never touch them. API clients can ignore the cookies and use the JSON
body + Authorization header instead; the server accepts both.

- access_token  → max-age 15 min
- refresh_token → max-age 7 days
Both are SameSite=Lax, path "/", and Secure in production.
"""

from starlette.responses import Response

from quarry.config import settings

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"

# Older clients used camelCase cookie names; still read, never written
LEGACY_ACCESS_COOKIE = "accessToken"
LEGACY_REFRESH_COOKIE = "refreshToken"


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    common = {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax",
        "path": "/",
    }
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=settings.access_token_expire_minutes * 60,
        **common,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        **common,
    )


def clear_auth_cookies(response: Response) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE, LEGACY_ACCESS_COOKIE, LEGACY_REFRESH_COOKIE):
        response.delete_cookie(name, path="/")
