"""Client-side proxy for a remote auth server.

Pattern: Remote Proxy
----------------------
``AuthServiceProxy`` has the same coroutine API as ``AuthService`` but
forwards every call as an MCP tool call to an ``AuthMCPServer``.  Error
payloads are turned back into the same ``AuthError`` subclasses the local
service raises, so code written against one works unchanged against the
other.

``connect`` starts the server as a stdio subprocess.  Keep the returned exit
stack alive for as long as the proxy is used and close it to shut the server
down.
"""

from __future__ import annotations

import contextlib
import logging
import os
import sys
from collections.abc import Iterable
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from session_auth.config import CONFIG_ENV_VAR
from session_auth.errors import FatalAuthError
from session_auth.mcp.payloads import unwrap
from session_auth.realms.base import Credentials

logger = logging.getLogger(__name__)


class AuthServiceProxy:
    """Forwards ``AuthService`` calls over an MCP ``ClientSession``."""

    def __init__(self, session: ClientSession) -> None:
        self._session = session

    @classmethod
    async def connect(
        cls,
        config_path: str | None = None,
        server_command: str = sys.executable,
        server_args: list[str] | None = None,
    ) -> tuple[AuthServiceProxy, contextlib.AsyncExitStack]:
        """Start an auth server subprocess and return a proxy connected to it."""
        env = dict(os.environ)
        if config_path is not None:
            env[CONFIG_ENV_VAR] = config_path

        server_params = StdioServerParameters(
            command=server_command,
            args=server_args or ["-m", "session_auth.mcp.auth_server"],
            env=env,
        )

        # Enter and exit the transport contexts from the same task.
        exit_stack = contextlib.AsyncExitStack()
        try:
            read_stream, write_stream = await exit_stack.enter_async_context(
                stdio_client(server_params)
            )
            session = await exit_stack.enter_async_context(
                ClientSession(read_stream, write_stream)
            )
            await session.initialize()
        except BaseException:
            await exit_stack.aclose()
            raise

        logger.info("Connected to auth server (%s %s)", server_command, " ".join(server_params.args))
        return cls(session), exit_stack

    async def login(self, credentials: Credentials, timeout: float | str | None = None) -> str:
        arguments: dict[str, Any] = {"credentials": dict(credentials)}
        if timeout is not None:
            arguments["timeout"] = timeout
        return await self._call("login", arguments)

    async def login_with_timeout(self, credentials: Credentials, timeout: float | str) -> str:
        return await self.login(credentials, timeout=timeout)

    async def refresh_login_session(self, session_id: str) -> None:
        await self._call("refresh_login_session", {"session_id": session_id})

    async def logout(self, session_id: str) -> None:
        await self._call("logout", {"session_id": session_id})

    async def has_role(self, session_id: str, role: str) -> bool:
        return await self._call("has_role", {"session_id": session_id, "role": role})

    async def has_roles(self, session_id: str, roles: Iterable[str]) -> bool:
        return await self._call("has_roles", {"session_id": session_id, "roles": list(roles)})

    async def has_permission(self, session_id: str, permission: str) -> bool:
        return await self._call(
            "has_permission", {"session_id": session_id, "permission": permission}
        )

    async def has_permissions(self, session_id: str, permissions: Iterable[str]) -> bool:
        return await self._call(
            "has_permissions", {"session_id": session_id, "permissions": list(permissions)}
        )

    # -- private helpers -----------------------------------------------------

    async def _call(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        result = await self._session.call_tool(tool_name, arguments=arguments)
        # Flatten TextContent list to a single string.
        parts = [content.text for content in result.content if hasattr(content, "text")]
        if not parts:
            raise FatalAuthError(f"Empty response from auth server for '{tool_name}'")
        return unwrap("\n".join(parts))
