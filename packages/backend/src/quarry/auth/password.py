"""Password hashing and policy checks.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting, so hashing the same password twice gives two different
strings that both verify. The work factor is embedded in the hash
("$2b$12$..."), so raising QUARRY_BCRYPT_ROUNDS later does not break
existing hashes.

Policy checks are separate from hashing and return every violated rule
rather than stopping at the first one. Passwords longer than 72 bytes
are refused by policy: bcrypt would silently ignore the tail, and two
passwords sharing their first 72 bytes would verify against each other.
"""

import re
from functools import lru_cache

import bcrypt

from quarry.config import settings
from quarry.db.models import EMAIL_MAX_LEN, NAME_MAX_LEN

PASSWORD_MIN_LEN = 8

# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_SYMBOL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?`~]")


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    pw_bytes = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash. Malformed hashes never verify."""
    try:
        pw_bytes = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError, AttributeError):
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("quarry-timing-equalizer")


def burn_verify(password: str) -> None:
    """Spend one bcrypt check's worth of time without a real hash.

    Login calls this when the email is unknown so the response time does
    not reveal whether the account exists.
    """
    verify_password(password, _dummy_hash())


def validate_password(password: str) -> list[str]:
    """Return the list of policy rules `password` violates (empty = ok)."""
    errors: list[str] = []

    if len(password) < PASSWORD_MIN_LEN:
        errors.append(
            f"Password must be at least {PASSWORD_MIN_LEN} characters long"
        )
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        errors.append(
            f"Password must be at most {BCRYPT_MAX_BYTES} bytes long"
        )

    if not settings.password_require_complexity:
        return errors

    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not _SYMBOL_RE.search(password):
        errors.append("Password must contain at least one special character")

    return errors


def validate_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def validate_account_fields(email: str, name: str) -> list[str]:
    """Problems with an (already normalized) email and display name."""
    errors: list[str] = []
    if not validate_email(email):
        errors.append("Invalid email address")
    if len(email) > EMAIL_MAX_LEN:
        errors.append(f"Email must be at most {EMAIL_MAX_LEN} characters")
    if len(name) > NAME_MAX_LEN:
        errors.append(f"Name must be at most {NAME_MAX_LEN} characters")
    return errors


def normalize_email(email: str) -> str:
    return email.strip().lower()
