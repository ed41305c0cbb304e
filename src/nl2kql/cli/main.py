"""CLI entrypoint for the nl2kql MCP server."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable, Sequence

from nl2kql.config.loader import load_settings
from nl2kql.config.serving_models import ServerConfig
from nl2kql.config.settings import Settings
from nl2kql.serving.mcp.models import ListSupportedTablesResult
from nl2kql.serving.mcp.server import create_mcp_server
from nl2kql.services.errors import ConfigurationError

LOG = logging.getLogger("nl2kql.cli")

CommandHandler = Callable[[ServerConfig, Settings], int]


# ---------------------------------------------------------------------------
# Argument parsing / logging setup
# ---------------------------------------------------------------------------


def _setup_logging(config: ServerConfig) -> None:
    """Configure root logging on stderr; stdout carries the stdio transport."""
    logging.basicConfig(
        level=config.logging_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nl2kql",
        description="Natural-language to KQL tools served over MCP.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (-v INFO, -vv DEBUG).",
    )
    parser.add_argument(
        "--settings",
        default=None,
        help="Path to the YAML settings file (default: $NL2KQL_SETTINGS).",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="Run the MCP server over stdio (default).")
    subparsers.add_parser("tables", help="Print the supported tables as JSON.")
    return parser


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_serve(config: ServerConfig, settings: Settings) -> int:
    server, services = create_mcp_server(settings, config=config)
    try:
        server.run()
    finally:
        services.close()
    return 0


def _cmd_tables(_config: ServerConfig, settings: Settings) -> int:
    result = ListSupportedTablesResult.from_settings(settings)
    sys.stdout.write(json.dumps(result.model_dump(), indent=2) + "\n")
    return 0


COMMANDS: dict[str, CommandHandler] = {
    "serve": _cmd_serve,
    "tables": _cmd_tables,
}


def main(argv: Sequence[str] | None = None) -> int:
    """
    Parse arguments, load settings once, and dispatch the command.

    Settings failures are fatal: they are logged and the process exits
    without serving any request.

    Returns
    -------
    int
        Process exit code.
    """
    args = _build_parser().parse_args(argv)
    try:
        config = ServerConfig.from_env(settings_path=args.settings, verbosity=args.verbose)
    except ConfigurationError as exc:
        _setup_logging(ServerConfig())
        LOG.error("Could not load server options: %s", exc)  # noqa: TRY400
        return 1
    _setup_logging(config)

    try:
        settings = load_settings(config.settings_path)
    except ConfigurationError as exc:
        LOG.error("Could not load settings: %s", exc)  # noqa: TRY400
        return 1

    handler = COMMANDS[args.command or "serve"]
    return handler(config, settings)


if __name__ == "__main__":
    sys.exit(main())
