"""Command-line interface for lsprelay."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console

from lsprelay import __version__
from lsprelay.config.schema import DEFAULT_CLIENT_LOG, Config

console = Console(stderr=True)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="lsprelay",
        description="Run language servers on a remote host as if they were local",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=None,
        help="Increase verbosity (can be repeated, up to -vvvv)",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-error console output",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Config file path (default: ./lsprelay.yaml)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to this file",
    )
    parser.add_argument(
        "--log-level",
        help="Log level (trace, debug, verbose, info, warning, error)",
    )

    subparsers = parser.add_subparsers(dest="mode", help="Operating mode")

    # Server mode
    server_parser = subparsers.add_parser(
        "server",
        help="Accept connections and spawn backends",
    )
    server_parser.add_argument("--host", help="Address to bind (default: 127.0.0.1)")
    server_parser.add_argument("--port", type=int, help="Port to bind (default: 3001)")

    # Client mode
    client_parser = subparsers.add_parser(
        "client",
        help="Relay stdio to a server for the current workspace",
    )
    client_parser.add_argument("--host", help="Server address (default: 127.0.0.1)")
    client_parser.add_argument("--port", type=int, help="Server port (default: 3001)")
    client_parser.add_argument(
        "--workspaces",
        type=Path,
        help="YAML file listing workspaces (root, command, args)",
    )
    client_parser.add_argument(
        "--cwd",
        type=Path,
        help="Directory to resolve the workspace for (default: current directory)",
    )

    return parser


def apply_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    """Apply CLI flags on top of the loaded config."""
    logging_config = config.logging
    if parsed.verbose is not None:
        logging_config = dataclasses.replace(logging_config, verbose=parsed.verbose)
    if parsed.log_level:
        logging_config = dataclasses.replace(logging_config, level=parsed.log_level, verbose=None)
    if parsed.log_file:
        logging_config = dataclasses.replace(logging_config, file=parsed.log_file)
    config = dataclasses.replace(config, logging=logging_config)

    if parsed.mode == "server":
        server = config.server
        if parsed.host:
            server = dataclasses.replace(server, host=parsed.host)
        if parsed.port is not None:
            server = dataclasses.replace(server, port=parsed.port)
        config = dataclasses.replace(config, server=server)

    elif parsed.mode == "client":
        client = config.client
        if parsed.host:
            client = dataclasses.replace(client, host=parsed.host)
        if parsed.port is not None:
            client = dataclasses.replace(client, port=parsed.port)
        if parsed.workspaces is not None:
            client = dataclasses.replace(client, workspaces_file=parsed.workspaces)
        config = dataclasses.replace(config, client=client)
        if not config.logging.file:
            # stdout is the protocol channel; keep logs out of the editor's way
            config = dataclasses.replace(
                config, logging=dataclasses.replace(config.logging, file=DEFAULT_CLIENT_LOG)
            )

    return config


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.mode is None:
        parser.print_help()
        return 1

    from lsprelay.config import load_config
    from lsprelay.errors import ConfigError
    from lsprelay.logging import setup_logging

    try:
        config = apply_overrides(load_config(parsed.config), parsed)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if parsed.mode == "server":
        setup_logging(config.logging, console=True)
        from lsprelay.modes import run_server
        return asyncio.run(run_server(config, quiet=parsed.quiet))
    elif parsed.mode == "client":
        setup_logging(config.logging)
        from lsprelay.modes import run_client_mode
        return asyncio.run(run_client_mode(config, cwd=parsed.cwd))
    else:
        parser.print_help()
        return 1
