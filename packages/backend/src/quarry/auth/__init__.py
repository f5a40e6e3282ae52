"""Authentication and authorization.

Learn: Users authenticate with email/password and receive two JWTs:
1. Access token → short-lived, sent on every request (header or cookie)
2. Refresh token → long-lived, single-use, backed by a row in `sessions`

Every request resolves to the current user (or None) by re-reading the
user row, so deactivation and role changes are never taken on trust
from an old token.
"""
