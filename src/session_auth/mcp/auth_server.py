"""MCP server exposing the auth service to remote callers.

Pattern: Service Facade over a Tool Registry
----------------------------------------------
The auth service can be deployed as its own process and used through message
passing.  This module wraps one ``AuthService`` in an MCP server: every
service operation is registered as a tool whose arguments are described by a
pydantic request model (see ``session_auth.mcp.payloads``).  The MCP library
owns the stdio transport; this module only registers tools and translates
between JSON arguments and service calls.

Failures never escape as protocol errors.  An ``AuthError`` is turned into an
``{"error": ...}`` payload so the caller receives exactly one answer per call,
success or failure, through the same channel.

Run as a subprocess::

    SESSION_AUTH_CONFIG=config/settings.yaml python -m session_auth.mcp.auth_server
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool
from pydantic import BaseModel, ValidationError

from session_auth.config import AuthServiceConfig, load_config
from session_auth.errors import AuthError
from session_auth.mcp.payloads import (
    InvalidRequestError,
    LoginRequest,
    PermissionRequest,
    PermissionsRequest,
    RoleRequest,
    RolesRequest,
    SessionRequest,
    error_payload,
    result_payload,
)
from session_auth.service import AuthService

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Any]]

SERVER_NAME = "session-auth"


class AuthMCPServer:
    """Registers the ``AuthService`` operations as MCP tools."""

    def __init__(self, service: AuthService, server_name: str = SERVER_NAME) -> None:
        self._service = service
        self._server = Server(server_name)
        self._tools: dict[str, Tool] = {}
        self._handlers: dict[str, tuple[type[BaseModel], Handler]] = {}
        self._register_all_tools()
        logger.info("MCP server '%s' ready with tools %s", server_name, sorted(self._tools))

    @property
    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    # -- tool registration ----------------------------------------------------

    def _register_tool(
        self,
        name: str,
        description: str,
        request_model: type[BaseModel],
        handler: Handler,
    ) -> None:
        self._tools[name] = Tool(
            name=name,
            description=description,
            inputSchema=request_model.model_json_schema(),
        )
        self._handlers[name] = (request_model, handler)

    def _register_all_tools(self) -> None:
        service = self._service

        self._register_tool(
            "login",
            "Verify credentials and open a login session. Returns the session id.",
            LoginRequest,
            lambda req: service.login(req.credentials, timeout=req.timeout),
        )
        self._register_tool(
            "refresh_login_session",
            "Restart the timeout window of a login session.",
            SessionRequest,
            lambda req: service.refresh_login_session(req.session_id),
        )
        self._register_tool(
            "logout",
            "End a login session.",
            SessionRequest,
            lambda req: service.logout(req.session_id),
        )
        self._register_tool(
            "has_role",
            "Check whether the logged-in user holds a role.",
            RoleRequest,
            lambda req: service.has_role(req.session_id, req.role),
        )
        self._register_tool(
            "has_roles",
            "Check whether the logged-in user holds all of the given roles.",
            RolesRequest,
            lambda req: service.has_roles(req.session_id, req.roles),
        )
        self._register_tool(
            "has_permission",
            "Check whether the logged-in user is granted a permission.",
            PermissionRequest,
            lambda req: service.has_permission(req.session_id, req.permission),
        )
        self._register_tool(
            "has_permissions",
            "Check whether the logged-in user is granted all of the given permissions.",
            PermissionsRequest,
            lambda req: service.has_permissions(req.session_id, req.permissions),
        )

    # -- dispatch -------------------------------------------------------------

    async def dispatch(self, name: str, arguments: dict[str, Any] | None) -> str:
        """Run tool *name* and return its JSON response text."""
        entry = self._handlers.get(name)
        if entry is None:
            return error_payload(InvalidRequestError(f"Unknown tool: {name}"))
        request_model, handler = entry
        try:
            request = request_model.model_validate(arguments or {})
        except ValidationError as exc:
            return error_payload(InvalidRequestError(str(exc)))
        try:
            result = await handler(request)
        except ValueError as exc:
            return error_payload(InvalidRequestError(str(exc)))
        except AuthError as exc:
            logger.debug("Tool %s failed: %s", name, type(exc).__name__)
            return error_payload(exc)
        return result_payload(result)

    # -- lifecycle ------------------------------------------------------------

    def setup_handlers(self) -> None:
        """Wire up MCP protocol handlers."""
        server = self._server

        @server.list_tools()
        async def list_tools() -> list[Tool]:
            return self.tools

        @server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            return [TextContent(type="text", text=await self.dispatch(name, arguments))]

    async def run(self) -> None:
        """Start the service and serve MCP on stdio until the client disconnects."""
        from mcp.server.stdio import stdio_server

        self.setup_handlers()
        async with self._service:
            async with stdio_server() as (read_stream, write_stream):
                await self._server.run(
                    read_stream,
                    write_stream,
                    self._server.create_initialization_options(),
                )


def serve(config: AuthServiceConfig | None = None) -> None:
    """Build the service from *config* (or the settings file) and serve it on stdio."""
    service = AuthService.create(config if config is not None else load_config())
    asyncio.run(AuthMCPServer(service).run())


# Entry point when run as a subprocess by the MCP stdio transport.
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    serve()
