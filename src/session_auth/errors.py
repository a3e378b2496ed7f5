"""Exception taxonomy shared by the session store, realms and the service facade.

Callers only ever need to catch ``AuthError``; the subclasses tell them what
to do next:

  - ``InvalidCredentials``: login rejected by the realm.  Nothing was stored.
  - ``SessionNotFound``: the session id never existed, was logged out, or
    has expired.  The three cases are indistinguishable.
  - ``FatalAuthError``: entropy source or backing store failure.  Not
    retried.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error surfaced by the auth service."""


class InvalidCredentials(AuthError):
    """Raised when a realm rejects the supplied credentials."""


class SessionNotFound(AuthError):
    """Raised when a session id does not refer to a live session."""

    def __init__(self, message: str = "Login session not found or expired") -> None:
        super().__init__(message)


class FatalAuthError(AuthError):
    """Raised on unrecoverable failures (entropy source, storage, unreachable realm)."""


class ServiceNotStartedError(AuthError):
    """Raised when an operation is attempted on a service that is not running."""


class ConfigError(Exception):
    """Raised when the settings file or realm configuration is malformed."""
