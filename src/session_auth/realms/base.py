"""The capability every realm provides to the auth service.

A realm turns a credentials mapping into a ``Principal`` or refuses.  It is a
structural ``Protocol``: any object with a matching ``verify`` method is a
realm, there is no base class to inherit from.  Realms may block (network or
file I/O); the service always calls them off the event loop.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from session_auth.auth.principal import Principal
from session_auth.errors import InvalidCredentials

Credentials = Mapping[str, Any]


@runtime_checkable
class CredentialVerifier(Protocol):
    def verify(self, credentials: Credentials) -> Principal:
        """Return the principal for *credentials*.

        Raises ``InvalidCredentials`` if they are rejected.
        """
        ...


def username_password(credentials: Credentials) -> tuple[str, str]:
    """Extract the ``username``/``password`` pair most realms expect."""
    username = credentials.get("username")
    password = credentials.get("password")
    if not isinstance(username, str) or not username:
        raise InvalidCredentials("Credentials must contain a 'username' string")
    if not isinstance(password, str):
        raise InvalidCredentials("Credentials must contain a 'password' string")
    return username, password
