"""Server mode - accept connections until interrupted."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from rich.console import Console

from lsprelay.launcher import ProcessLauncher
from lsprelay.server import RelayServer

if TYPE_CHECKING:
    from lsprelay.config import Config

console = Console(stderr=True)


async def run_server(config: Config, *, quiet: bool = False) -> int:
    """Run in server mode.

    Args:
        config: Configuration
        quiet: Suppress console status output

    Returns:
        Exit code
    """
    launcher = ProcessLauncher(shutdown=config.shutdown)
    server = RelayServer(config.server.host, config.server.port, launcher)

    try:
        await server.start()
    except OSError as e:
        console.print(
            f"[red]Error: cannot listen on {config.server.host}:{config.server.port}: {e}[/red]"
        )
        return 1

    if not quiet:
        console.print(f"[green]Listening on {server.host}:{server.port}[/green]")

    try:
        await server.serve_forever()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        await server.close()
        if not quiet:
            console.print("[dim]Server stopped[/dim]")

    return 0
