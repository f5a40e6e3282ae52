"""Auth service and session store tests (service layer, no HTTP).

Learn: These drive AuthService directly against the test database, so
the session table can be inspected between steps — something the API
tests can only observe indirectly.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import PASSWORD, unique_email
from quarry.auth.errors import (
    AuthenticationFailed,
    Conflict,
    InvalidCredentials,
    InvalidInput,
    InvalidToken,
)
from quarry.auth.jwt import verify_refresh_token
from quarry.db.models import Session, User, utcnow
from quarry.services.auth_service import AuthService, claims_for
from quarry.services.session_store import SessionStore


async def _session_count(db, user_id=None) -> int:
    stmt = select(func.count(Session.id))
    if user_id is not None:
        stmt = stmt.where(Session.user_id == user_id)
    return (await db.execute(stmt)).scalar_one()


# ═══════════════════════════════════════════════════════════
# Register / login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_creates_user_and_session(db_session):
    svc = AuthService(db_session)
    result = await svc.register(unique_email(), PASSWORD, "Someone")

    user = await db_session.get(User, result.user.id)
    assert user is not None
    assert user.password_hash != PASSWORD
    assert await _session_count(db_session, user.id) == 1

    claims = verify_refresh_token(result.refresh_token)
    assert claims.user_id == user.id
    assert claims.role == "admin"


@pytest.mark.asyncio
async def test_register_duplicate_raises_conflict(db_session):
    svc = AuthService(db_session)
    email = unique_email()
    await svc.register(email, PASSWORD, "One")
    with pytest.raises(Conflict):
        await svc.register(email, PASSWORD, "Two")


@pytest.mark.asyncio
async def test_register_invalid_input_collects_errors(db_session):
    with pytest.raises(InvalidInput) as exc:
        await AuthService(db_session).register("bad", "weak", "Name")
    assert "Invalid email address" in exc.value.errors
    assert len(exc.value.errors) > 1


@pytest.mark.asyncio
async def test_login_errors_share_type_and_message(db_session):
    svc = AuthService(db_session)
    email = unique_email()
    await svc.register(email, PASSWORD, "Someone")

    with pytest.raises(InvalidCredentials) as wrong:
        await svc.login(email, "Wr0ng!Pass")
    with pytest.raises(InvalidCredentials) as unknown:
        await svc.login(unique_email(), PASSWORD)
    assert str(wrong.value) == str(unknown.value) == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_inactive_user_rejected(db_session):
    svc = AuthService(db_session)
    email = unique_email()
    result = await svc.register(email, PASSWORD, "Someone")

    user = await db_session.get(User, result.user.id)
    user.is_active = False
    await db_session.commit()

    with pytest.raises(InvalidCredentials):
        await svc.login(email, PASSWORD)


@pytest.mark.asyncio
async def test_each_login_adds_a_session(db_session):
    svc = AuthService(db_session)
    email = unique_email()
    result = await svc.register(email, PASSWORD, "Someone")
    await svc.login(email, PASSWORD)
    await svc.login(email, PASSWORD)
    assert await _session_count(db_session, result.user.id) == 3


# ═══════════════════════════════════════════════════════════
# Refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_refresh_replaces_session(db_session):
    svc = AuthService(db_session)
    first = await svc.register(unique_email(), PASSWORD, "Someone")

    second = await svc.refresh(first.refresh_token)
    assert second.refresh_token != first.refresh_token
    assert await _session_count(db_session, first.user.id) == 1

    with pytest.raises(InvalidToken):
        await svc.refresh(first.refresh_token)


@pytest.mark.asyncio
async def test_refresh_picks_up_role_change(db_session):
    """Claims are rebuilt from the user row on refresh."""
    svc = AuthService(db_session)
    await svc.register(unique_email(), PASSWORD, "Admin")
    result = await svc.register(unique_email(), PASSWORD, "Later Admin")
    assert result.user.role == "user"

    user = await db_session.get(User, result.user.id)
    user.role = "admin"
    await db_session.commit()

    refreshed = await svc.refresh(result.refresh_token)
    assert verify_refresh_token(refreshed.refresh_token).role == "admin"
    assert refreshed.user.role == "admin"


@pytest.mark.asyncio
async def test_refresh_rejects_inactive_user(db_session):
    svc = AuthService(db_session)
    result = await svc.register(unique_email(), PASSWORD, "Someone")

    user = await db_session.get(User, result.user.id)
    user.is_active = False
    await db_session.commit()

    with pytest.raises(InvalidToken):
        await svc.refresh(result.refresh_token)


@pytest.mark.asyncio
async def test_refresh_rejects_missing_and_garbage(db_session):
    svc = AuthService(db_session)
    with pytest.raises(AuthenticationFailed):
        await svc.refresh(None)
    with pytest.raises(AuthenticationFailed):
        await svc.refresh("garbage")


@pytest.mark.asyncio
async def test_expired_session_is_pruned(db_session):
    """A valid JWT whose session row has expired is rejected and removed."""
    svc = AuthService(db_session)
    result = await svc.register(unique_email(), PASSWORD, "Someone")

    row = (
        await db_session.execute(
            select(Session).where(Session.refresh_token == result.refresh_token)
        )
    ).scalar_one()
    row.expires_at = utcnow() - timedelta(seconds=1)
    await db_session.commit()

    with pytest.raises(InvalidToken):
        await svc.refresh(result.refresh_token)
    assert await _session_count(db_session, result.user.id) == 0


# ═══════════════════════════════════════════════════════════
# Logout / session store
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_logout_removes_only_that_session(db_session):
    svc = AuthService(db_session)
    email = unique_email()
    a = await svc.register(email, PASSWORD, "Someone")
    b = await svc.login(email, PASSWORD)

    await svc.logout(a.refresh_token)
    assert await _session_count(db_session, a.user.id) == 1

    refreshed = await svc.refresh(b.refresh_token)
    assert refreshed.user.id == a.user.id


@pytest.mark.asyncio
async def test_logout_unknown_token_is_noop(db_session):
    await AuthService(db_session).logout("never-issued")
    await AuthService(db_session).logout(None)


@pytest.mark.asyncio
async def test_validate_requires_matching_user(db_session):
    svc = AuthService(db_session)
    a = await svc.register(unique_email(), PASSWORD, "A")
    b = await svc.register(unique_email(), PASSWORD, "B")

    store = SessionStore(db_session)
    assert await store.validate(a.refresh_token, a.user.id) is not None
    assert await store.validate(a.refresh_token, b.user.id) is None


@pytest.mark.asyncio
async def test_revoke_all(db_session):
    svc = AuthService(db_session)
    email = unique_email()
    result = await svc.register(email, PASSWORD, "Someone")
    await svc.login(email, PASSWORD)

    removed = await SessionStore(db_session).revoke_all(result.user.id)
    await db_session.commit()
    assert removed == 2
    assert await _session_count(db_session, result.user.id) == 0


@pytest.mark.asyncio
async def test_store_create_sets_expiry(db_session):
    result = await AuthService(db_session).register(unique_email(), PASSWORD, "S")
    user = await db_session.get(User, result.user.id)

    issued = await SessionStore(db_session).create(claims_for(user))
    await db_session.commit()
    delta = issued.expires_at - utcnow()
    assert timedelta(days=6, hours=23) < delta <= timedelta(days=7)
