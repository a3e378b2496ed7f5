"""Interactive console for trying out a realm locally.

The console logs a user in against the configured realm, then accepts short
commands that exercise the session and authorisation API:

    role <name>             has_role
    roles <name> <name>...  has_roles
    perm <name>             has_permission
    perms <name> <name>...  has_permissions
    refresh                 refresh_login_session
    logout                  logout (ends the console)
    quit                    leave without logging out

Rich is used for display.  The console holds nothing but the session id; all
state lives in the ``AuthService``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import getpass
import logging

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from session_auth.config import AuthServiceConfig
from session_auth.errors import AuthError, InvalidCredentials, SessionNotFound
from session_auth.service import AuthService

logger = logging.getLogger(__name__)
console = Console()

_HELP_ROWS = [
    ("role <name>", "Does the user hold this role?"),
    ("roles <name> ...", "Does the user hold all of these roles?"),
    ("perm <name>", "Is the user granted this permission?"),
    ("perms <name> ...", "Is the user granted all of these permissions?"),
    ("refresh", "Restart the session timeout"),
    ("logout", "Log out and exit"),
    ("quit", "Exit"),
]


@dataclasses.dataclass(frozen=True)
class CommandResult:
    message: str
    done: bool = False


def _print_banner() -> None:
    console.print(
        Panel(
            "[bold]session-auth console[/bold]\n"
            "Login sessions and cached role/permission checks",
            border_style="blue",
        )
    )


def _print_help() -> None:
    table = Table(title="Commands")
    table.add_column("Command", style="cyan")
    table.add_column("Effect")
    for command, effect in _HELP_ROWS:
        table.add_row(command, effect)
    console.print(table)


def _yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"


async def execute_command(service: AuthService, session_id: str, line: str) -> CommandResult:
    """Run one console command against *session_id* and describe the outcome."""
    command, *args = line.split()
    command = command.lower()

    try:
        if command == "role" and len(args) == 1:
            return CommandResult(f"role {args[0]}: {_yes_no(await service.has_role(session_id, args[0]))}")
        if command == "roles" and args:
            held = await service.has_roles(session_id, args)
            return CommandResult(f"roles {' '.join(args)}: {_yes_no(held)}")
        if command == "perm" and len(args) == 1:
            granted = await service.has_permission(session_id, args[0])
            return CommandResult(f"permission {args[0]}: {_yes_no(granted)}")
        if command == "perms" and args:
            granted = await service.has_permissions(session_id, args)
            return CommandResult(f"permissions {' '.join(args)}: {_yes_no(granted)}")
        if command == "refresh" and not args:
            await service.refresh_login_session(session_id)
            return CommandResult("[green]Session refreshed.[/green]")
        if command == "logout" and not args:
            await service.logout(session_id)
            return CommandResult("[green]Logged out.[/green]", done=True)
        if command in ("quit", "exit"):
            return CommandResult("[dim]Bye.[/dim]", done=True)
    except SessionNotFound:
        return CommandResult(
            "[red]Session not found: it expired or was logged out. Log in again.[/red]",
            done=True,
        )

    return CommandResult(f"[yellow]Unknown command:[/yellow] {line}  (type 'help')")


async def _login(service: AuthService) -> str | None:
    console.print("\n[bold yellow]Login[/bold yellow]\n")
    username = input("  Username: ").strip()
    password = getpass.getpass("  Password: ")

    try:
        session_id = await service.login({"username": username, "password": password})
    except InvalidCredentials as exc:
        console.print(f"[red]Authentication failed:[/red] {exc}")
        return None

    console.print(f"\n  [green]Authenticated[/green] as [bold]{username}[/bold]")
    console.print(f"  Session timeout: {int(service.default_timeout.total_seconds())}s\n")
    return session_id


async def _console_loop(service: AuthService) -> None:
    async with service:
        session_id = await _login(service)
        if session_id is None:
            return
        _print_help()

        while True:
            try:
                line = await asyncio.to_thread(input, "auth> ")
            except (EOFError, KeyboardInterrupt):
                break
            line = line.strip()
            if not line:
                continue
            if line.lower() == "help":
                _print_help()
                continue

            try:
                outcome = await execute_command(service, session_id, line)
            except AuthError as exc:
                console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
                break
            console.print(outcome.message)
            if outcome.done:
                break


def run_cli(config: AuthServiceConfig) -> None:
    """Main entry point for the interactive console."""
    _print_banner()
    service = AuthService.create(config)
    asyncio.run(_console_loop(service))
    console.print("\n[dim]Session ended.[/dim]")
