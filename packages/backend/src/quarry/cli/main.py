"""Quarry CLI — database bootstrap and account administration.

Usage:
    quarry init-db                               # Create missing tables
    quarry create-admin -e ops@example.com       # Create (or promote) an admin
    quarry users                                 # List accounts
    quarry adopt-orphans                         # Give ownerless messages to an admin
    quarry serve                                 # Run the API with uvicorn

Commands talk to the database configured by QUARRY_DATABASE_URL.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import click
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quarry import __version__
from quarry.auth.password import (
    hash_password,
    normalize_email,
    validate_account_fields,
    validate_email,
    validate_password,
)
from quarry.config import settings
from quarry.db.models import ROLE_ADMIN, User
from quarry.services.chat_service import ChatService
from quarry.services.user_service import UserService

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class CommandError(Exception):
    """A user-facing failure; printed in red, exits 1."""


async def _with_session(fn, *args):
    from quarry.db.engine import async_session_factory, engine

    try:
        async with async_session_factory() as db:
            return await fn(db, *args)
    finally:
        await engine.dispose()


def _run(fn, *args):
    try:
        return asyncio.run(_with_session(fn, *args))
    except CommandError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "—"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


# ---------------------------------------------------------------------------
# Operations (take a session so they can be driven from tests)
# ---------------------------------------------------------------------------


async def create_admin(
    db: AsyncSession, email: str, name: str, password: Optional[str]
) -> tuple[User, bool]:
    """Create an admin account, or promote an existing one.

    Returns (user, created).
    """
    email = normalize_email(email)
    if not validate_email(email):
        raise CommandError(f"Invalid email address: {email}")

    users = UserService(db)
    user = await users.get_by_email(email)
    if user is not None:
        await users.update(user, role=ROLE_ADMIN, is_active=True)
        await db.commit()
        return user, False

    if not password:
        raise CommandError("A password is required to create a new account")
    problems = validate_account_fields(email, name) + validate_password(password)
    if problems:
        raise CommandError("; ".join(problems))

    user = await users.create(
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=ROLE_ADMIN,
    )
    await db.commit()
    return user, True


async def find_or_create_owner(db: AsyncSession, email: Optional[str]) -> User:
    """The admin who should receive orphaned data.

    An explicit email must exist. Otherwise the oldest admin is used, and
    if there is none, the default admin from settings is created.
    """
    users = UserService(db)
    if email:
        user = await users.get_by_email(normalize_email(email))
        if user is None:
            raise CommandError(f"No user with email {email}")
        return user

    result = await db.execute(
        select(User).where(User.role == ROLE_ADMIN).order_by(User.created_at).limit(1)
    )
    admin = result.scalars().first()
    if admin is not None:
        return admin

    if not settings.default_admin_password:
        raise CommandError(
            "No admin exists. Set QUARRY_DEFAULT_ADMIN_PASSWORD or run create-admin first"
        )
    admin, _ = await create_admin(
        db,
        settings.default_admin_email,
        "Admin User",
        settings.default_admin_password,
    )
    return admin


async def adopt_orphans(db: AsyncSession, email: Optional[str]) -> tuple[User, int]:
    owner = await find_or_create_owner(db, email)
    adopted = await ChatService(db).adopt_orphan_messages(owner.id)
    return owner, adopted


async def list_users(db: AsyncSession) -> list[User]:
    return await UserService(db).list_users()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="quarry")
def main():
    """Quarry — accounts, sessions and per-user provider settings."""


@main.command("init-db")
def init_db_cmd():
    """Create any missing database tables."""
    from quarry.db.engine import engine, init_db

    async def _init():
        try:
            await init_db(engine)
        finally:
            await engine.dispose()

    asyncio.run(_init())
    click.secho("Database initialized", fg="green")


@main.command("create-admin")
@click.option("--email", "-e", required=True, help="Admin email address")
@click.option("--name", "-n", default="Admin User", help="Display name")
@click.option(
    "--password",
    "-p",
    help="Password for a new account (prompted if omitted)",
)
def create_admin_cmd(email: str, name: str, password: Optional[str]):
    """Create an admin account, or promote an existing user to admin."""

    async def _impl(db: AsyncSession):
        pw = password
        existing = await UserService(db).get_by_email(normalize_email(email))
        if existing is None and not pw:
            pw = click.prompt("Password", hide_input=True, confirmation_prompt=True)
        return await create_admin(db, email, name, pw)

    user, created = _run(_impl)
    verb = "Created" if created else "Promoted"
    click.secho(f"{verb} admin {user.email} ({user.id})", fg="green")


@main.command("users")
def users_cmd():
    """List all accounts."""
    users = _run(list_users)
    rows = [
        {
            "email": u.email,
            "name": u.name,
            "role": u.role,
            "active": "yes" if u.is_active else "no",
            "id": str(u.id),
        }
        for u in users
    ]
    _print_table(
        rows,
        [
            ("EMAIL", "email", 32),
            ("NAME", "name", 20),
            ("ROLE", "role", 6),
            ("ACTIVE", "active", 6),
            ("ID", "id", 36),
        ],
    )


@main.command("adopt-orphans")
@click.option("--email", "-e", help="Owner email (defaults to the oldest admin)")
def adopt_orphans_cmd(email: Optional[str]):
    """Assign messages that have no owner to an admin account."""
    owner, adopted = _run(adopt_orphans, email)
    if adopted:
        click.secho(f"Assigned {adopted} orphaned messages to {owner.email}", fg="green")
    else:
        click.echo("No orphaned messages found")


@main.command("serve")
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", default=None, type=int, help="Port (default from settings)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve_cmd(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "quarry.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


if __name__ == "__main__":
    main()
