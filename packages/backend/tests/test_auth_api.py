"""Auth API tests — register, login, refresh, logout, /me.

Learn: Tests cover:
1. Registration, first-user admin, duplicate and policy failures
2. Login → JWT pair + httpOnly cookies, identical failure responses
3. Refresh rotation (each refresh token works exactly once)
4. Logout revocation and cookie clearing
5. Request authentication via header, cookie and legacy cookie
"""

import pytest

from conftest import PASSWORD, bearer, unique_email
from quarry.config import settings


# ═══════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_user(client):
    """Register returns a token pair and the public user."""
    email = unique_email("test")
    r = await client.post(
        "/api/v1/auth/register",
        json={"email": email, "name": "Test User", "password": PASSWORD},
    )
    assert r.status_code == 201
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["access_token"]
    assert body["refresh_token"]
    assert body["expires_in"] == 15 * 60
    assert body["user"]["email"] == email
    assert body["user"]["name"] == "Test User"
    assert body["user"]["is_active"] is True
    assert "password_hash" not in body["user"]


@pytest.mark.asyncio
async def test_first_user_is_admin_then_users(register):
    """The first account becomes admin, later ones are plain users."""
    first = await register()
    second = await register()
    assert first["user"]["role"] == "admin"
    assert second["user"]["role"] == "user"


@pytest.mark.asyncio
async def test_register_normalizes_email(client, register):
    """Emails are trimmed and lower-cased before storage."""
    body = await register(email="  Mixed.Case@Example.COM ")
    assert body["user"]["email"] == "mixed.case@example.com"

    r = await client.post(
        "/api/v1/auth/login",
        json={"email": "MIXED.CASE@example.com", "password": PASSWORD},
    )
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_register_duplicate_email(client, register):
    """Can't register with the same email twice, in any letter case."""
    email = unique_email("dup")
    await register(email=email)

    r = await client.post(
        "/api/v1/auth/register",
        json={"email": email.upper(), "name": "Again", "password": PASSWORD},
    )
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_register_weak_password_lists_every_problem(client):
    """A weak password is rejected with every violated rule."""
    r = await client.post(
        "/api/v1/auth/register",
        json={"email": unique_email("weak"), "name": "Weak", "password": "abc"},
    )
    assert r.status_code == 400
    detail = r.json()["detail"]
    assert "message" in detail
    errors = detail["errors"]
    assert any("8 characters" in e for e in errors)
    assert any("uppercase" in e for e in errors)
    assert any("number" in e for e in errors)
    assert any("special" in e for e in errors)


@pytest.mark.asyncio
async def test_register_invalid_email(client):
    r = await client.post(
        "/api/v1/auth/register",
        json={"email": "not-an-email", "name": "Bad", "password": PASSWORD},
    )
    assert r.status_code == 400
    assert "Invalid email address" in r.json()["detail"]["errors"]


@pytest.mark.asyncio
async def test_register_missing_fields(client):
    """Blank required fields are a 400, not a crash."""
    r = await client.post(
        "/api/v1/auth/register",
        json={"email": "", "name": "", "password": ""},
    )
    assert r.status_code == 400
    assert r.json()["detail"]["errors"] == ["Email, password, and name are required"]


@pytest.mark.asyncio
async def test_register_overlong_fields(client):
    """Name and email longer than their columns are a 400, not a 500."""
    r = await client.post(
        "/api/v1/auth/register",
        json={
            "email": "a" * 250 + "@example.com",
            "name": "n" * 101,
            "password": PASSWORD,
        },
    )
    assert r.status_code == 400
    errors = r.json()["detail"]["errors"]
    assert "Name must be at most 100 characters" in errors
    assert "Email must be at most 255 characters" in errors


@pytest.mark.asyncio
async def test_register_name_at_limit_accepted(register):
    body = await register(name="n" * 100)
    assert body["user"]["name"] == "n" * 100


@pytest.mark.asyncio
async def test_register_password_over_72_bytes(client):
    """bcrypt ignores bytes past 72, so such passwords are refused."""
    r = await client.post(
        "/api/v1/auth/register",
        json={"email": unique_email("long"), "name": "Long", "password": "Aa1!" + "x" * 69},
    )
    assert r.status_code == 400
    assert "Password must be at most 72 bytes long" in r.json()["detail"]["errors"]


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_success(client, register):
    """Login with valid credentials returns tokens and sets cookies."""
    email = unique_email("login")
    await register(email=email)

    r = await client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": PASSWORD},
    )
    assert r.status_code == 200
    tokens = r.json()
    assert tokens["access_token"]
    assert tokens["refresh_token"]
    assert tokens["user"]["email"] == email

    set_cookie = r.headers.get_list("set-cookie")
    access = next(c for c in set_cookie if c.startswith("access_token="))
    refresh = next(c for c in set_cookie if c.startswith("refresh_token="))
    assert "HttpOnly" in access
    assert "Max-Age=900" in access
    assert "samesite=lax" in access.lower()
    assert "Max-Age=604800" in refresh


@pytest.mark.asyncio
async def test_cookies_secure_only_in_production(client, register, monkeypatch):
    """Auth cookies carry Secure in production and not in development."""
    email = unique_email("secure")
    await register(email=email)
    creds = {"email": email, "password": PASSWORD}

    dev = await client.post("/api/v1/auth/login", json=creds)
    assert dev.status_code == 200
    for cookie in dev.headers.get_list("set-cookie"):
        assert "secure" not in cookie.lower()

    monkeypatch.setattr(settings, "environment", "production")
    prod = await client.post("/api/v1/auth/login", json=creds)
    assert prod.status_code == 200
    cookies = prod.headers.get_list("set-cookie")
    access = next(c for c in cookies if c.startswith("access_token="))
    refresh = next(c for c in cookies if c.startswith("refresh_token="))
    assert "Secure" in access
    assert "Secure" in refresh


@pytest.mark.asyncio
async def test_login_failures_are_indistinguishable(client, register):
    """Wrong password and unknown email give the same 401 body."""
    email = unique_email("wrong")
    await register(email=email)

    wrong = await client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": "Wr0ng!Pass"},
    )
    unknown = await client.post(
        "/api/v1/auth/login",
        json={"email": unique_email("nobody"), "password": PASSWORD},
    )
    assert wrong.status_code == 401
    assert unknown.status_code == 401
    assert wrong.json() == unknown.json() == {"detail": "Invalid credentials"}


# ═══════════════════════════════════════════════════════════
# /me and request authentication
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_me_with_bearer_token(client, register):
    body = await register(name="Me User")
    r = await client.get("/api/v1/auth/me", headers=bearer(body["access_token"]))
    assert r.status_code == 200
    assert r.json()["id"] == body["user"]["id"]
    assert r.json()["name"] == "Me User"


@pytest.mark.asyncio
async def test_me_without_token(client):
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.json() == {"detail": "Authentication required"}
    assert r.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_me_with_garbage_token(client):
    r = await client.get("/api/v1/auth/me", headers=bearer("not-a-jwt"))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_is_not_an_access_token(client, register):
    """A refresh token presented as a bearer token is rejected."""
    body = await register()
    r = await client.get("/api/v1/auth/me", headers=bearer(body["refresh_token"]))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_me_with_cookie(client, register):
    body = await register()
    client.cookies.set("access_token", body["access_token"])
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 200
    assert r.json()["id"] == body["user"]["id"]


@pytest.mark.asyncio
async def test_me_with_legacy_cookie(client, register):
    body = await register()
    client.cookies.set("accessToken", body["access_token"])
    r = await client.get("/api/v1/auth/me")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_bearer_header_wins_over_cookie(client, register):
    first = await register()
    second = await register()
    client.cookies.set("access_token", first["access_token"])
    r = await client.get("/api/v1/auth/me", headers=bearer(second["access_token"]))
    assert r.json()["id"] == second["user"]["id"]


# ═══════════════════════════════════════════════════════════
# Refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_refresh_rotates_token(client, register):
    """A refresh token works once; its replacement works after that."""
    body = await register()
    old = body["refresh_token"]

    r1 = await client.post("/api/v1/auth/refresh", json={"refresh_token": old})
    assert r1.status_code == 200
    new = r1.json()["refresh_token"]
    assert new != old

    replay = await client.post("/api/v1/auth/refresh", json={"refresh_token": old})
    assert replay.status_code == 401

    r2 = await client.post("/api/v1/auth/refresh", json={"refresh_token": new})
    assert r2.status_code == 200


@pytest.mark.asyncio
async def test_refresh_from_cookie(client, register):
    body = await register()
    client.cookies.set("refresh_token", body["refresh_token"])
    r = await client.post("/api/v1/auth/refresh")
    assert r.status_code == 200
    assert r.json()["user"]["id"] == body["user"]["id"]


@pytest.mark.asyncio
async def test_refresh_new_access_token_works(client, register):
    body = await register()
    r = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]}
    )
    access = r.json()["access_token"]
    me = await client.get("/api/v1/auth/me", headers=bearer(access))
    assert me.status_code == 200


@pytest.mark.asyncio
async def test_refresh_without_token(client):
    r = await client.post("/api/v1/auth/refresh")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_with_access_token(client, register):
    """Access tokens are signed with a different secret."""
    body = await register()
    r = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": body["access_token"]}
    )
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_logout_revokes_refresh_token(client, register):
    body = await register()
    r = await client.post(
        "/api/v1/auth/logout", json={"refresh_token": body["refresh_token"]}
    )
    assert r.status_code == 200
    assert r.json() == {"success": True}

    cleared = " ".join(r.headers.get_list("set-cookie"))
    assert "access_token=" in cleared
    assert "refresh_token=" in cleared

    r2 = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]}
    )
    assert r2.status_code == 401


@pytest.mark.asyncio
async def test_logout_is_idempotent(client, register):
    body = await register()
    payload = {"refresh_token": body["refresh_token"]}
    assert (await client.post("/api/v1/auth/logout", json=payload)).status_code == 200
    assert (await client.post("/api/v1/auth/logout", json=payload)).status_code == 200
    assert (await client.post("/api/v1/auth/logout")).status_code == 200


@pytest.mark.asyncio
async def test_auth_responses_are_not_cached(client, register):
    body = await register()
    r = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]}
    )
    assert r.headers["Cache-Control"] == "no-store"


# ═══════════════════════════════════════════════════════════
# End to end
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_use_refresh_replay(client):
    """register → protected call → refresh → replay of the old token fails."""
    r = await client.post(
        "/api/v1/auth/register",
        json={"email": "a@x.com", "password": "Passw0rd!", "name": "Alice"},
    )
    assert r.status_code == 201
    body = r.json()
    assert body["user"]["role"] == "admin"
    cookie_names = {c.split("=", 1)[0] for c in r.headers.get_list("set-cookie")}
    assert {"access_token", "refresh_token"} <= cookie_names
    client.cookies.clear()

    me = await client.get("/api/v1/auth/me", headers=bearer(body["access_token"]))
    assert me.status_code == 200
    assert me.json()["email"] == "a@x.com"

    refreshed = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]}
    )
    assert refreshed.status_code == 200
    assert refreshed.json()["refresh_token"] != body["refresh_token"]

    replay = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]}
    )
    assert replay.status_code == 401
