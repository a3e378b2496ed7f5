"""Request and response shapes exchanged with the remote auth server.

Each tool takes one of the request models below as its arguments; the JSON
schema advertised for the tool is generated from the model, and incoming
arguments are validated against it before the service is called.

Responses are JSON objects carrying either ``{"result": ...}`` or
``{"error": "<ErrorName>", "message": "..."}``.  The error name is the class
name of an ``AuthError`` subclass so the proxy can raise the same exception
on the client side.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field

from session_auth.errors import (
    AuthError,
    FatalAuthError,
    InvalidCredentials,
    ServiceNotStartedError,
    SessionNotFound,
)

INVALID_REQUEST = "InvalidRequest"


class InvalidRequestError(AuthError):
    """Raised when tool arguments fail validation."""


_ERROR_TYPES: dict[str, type[AuthError]] = {
    cls.__name__: cls
    for cls in (
        InvalidCredentials,
        SessionNotFound,
        FatalAuthError,
        ServiceNotStartedError,
    )
}
_ERROR_TYPES[INVALID_REQUEST] = InvalidRequestError


class LoginRequest(BaseModel):
    credentials: dict[str, Any] = Field(
        description="Credentials for the realm, usually 'username' and 'password'."
    )
    timeout: float | str | None = Field(
        default=None,
        description="Session timeout in seconds or as '30s', '5m', '1h'. Defaults to the service default.",
    )


class SessionRequest(BaseModel):
    session_id: str = Field(description="Session id returned by login.")


class RoleRequest(SessionRequest):
    role: str = Field(description="Role name to check.")


class RolesRequest(SessionRequest):
    roles: list[str] = Field(description="Role names that must all be held.")


class PermissionRequest(SessionRequest):
    permission: str = Field(description="Permission name to check.")


class PermissionsRequest(SessionRequest):
    permissions: list[str] = Field(description="Permission names that must all be granted.")


def result_payload(result: Any) -> str:
    return json.dumps({"result": result})


def error_payload(exc: AuthError) -> str:
    name = INVALID_REQUEST if isinstance(exc, InvalidRequestError) else type(exc).__name__
    if name not in _ERROR_TYPES:
        name = FatalAuthError.__name__
    return json.dumps({"error": name, "message": str(exc)})


def unwrap(raw: str) -> Any:
    """Return the ``result`` of a response, or raise the error it carries."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise FatalAuthError(f"Malformed response from auth server: {raw!r}") from exc
    if not isinstance(data, dict):
        raise FatalAuthError(f"Malformed response from auth server: {raw!r}")
    if "error" in data:
        error_cls = _ERROR_TYPES.get(data["error"], FatalAuthError)
        raise error_cls(data.get("message", data["error"]))
    return data.get("result")
