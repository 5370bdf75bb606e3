"""Client mode - relay local stdio to the server."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console

from lsprelay.client import run_client
from lsprelay.config import client_workspaces
from lsprelay.errors import ClientError, ConfigError
from lsprelay.logging import get_logger

if TYPE_CHECKING:
    from lsprelay.config import Config

console = Console(stderr=True)
log = get_logger("client")


async def run_client_mode(config: Config, *, cwd: Path | None = None) -> int:
    """Run in client mode.

    Args:
        config: Configuration
        cwd: Directory to resolve the workspace for (default: current directory)

    Returns:
        Exit code
    """
    log.info("Client config: %s:%d", config.client.host, config.client.port)

    try:
        workspaces = client_workspaces(config)
        await run_client(config.client.host, config.client.port, workspaces, cwd=cwd)
    except (ClientError, ConfigError) as e:
        log.error("%s", e)
        console.print(f"[red]Error: {e}[/red]")
        return 1

    return 0
