"""Quarry — accounts, sessions and per-user provider settings.

The authentication and per-user configuration backend of the Quarry
search assistant: user accounts, rotating refresh sessions, request
authentication, and provider credentials layered over global defaults.
"""

__version__ = "0.1.0"
