"""CLI entry point: serve the auth service over MCP, or try it interactively."""

from __future__ import annotations

import argparse
import logging
import sys

from session_auth.config import CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH, load_config
from session_auth.errors import ConfigError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="session-auth",
        description="Login sessions and cached role/permission checks over pluggable realms",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to settings.yaml (default: ${CONFIG_ENV_VAR} or {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("serve", help="Serve the auth service as an MCP server on stdio")
    sub.add_parser("console", help="Log in and run authorisation checks interactively")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    # Logs go to stderr; stdout carries the MCP stream when serving.
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"session-auth: {exc}", file=sys.stderr)
        sys.exit(2)

    if args.command == "serve":
        from session_auth.mcp.auth_server import serve

        serve(config)
    else:
        from session_auth.prompt.cli import run_cli

        run_cli(config)


if __name__ == "__main__":
    main()
