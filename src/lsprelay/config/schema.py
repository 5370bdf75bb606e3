"""Configuration schema dataclasses for lsprelay.

All sections have defaults so a missing or partial config file works.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from lsprelay.workspace import WorkspaceDescriptor

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001
DEFAULT_CLIENT_LOG = "/tmp/lsprelay-client.log"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, takes precedence over level
    file: str | None = None  # Log file path


@dataclass
class ShutdownConfig:
    """Backend shutdown timeouts."""

    interrupt_timeout: float = 2.0
    """Seconds to wait after sending interrupt (SIGINT/Ctrl+Break)."""

    terminate_timeout: float = 3.0
    """Seconds to wait after sending terminate (SIGTERM)."""

    disconnect_grace: float = 2.0
    """Seconds a backend may keep running after its peer disconnects."""


@dataclass
class ServerConfig:
    """Listener address."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class ClientConfig:
    """Where the client connects and how it finds its workspace."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    workspaces_file: Path | None = None  # Separate YAML list of workspaces


@dataclass
class Config:
    """Root configuration object."""

    server: ServerConfig = field(default_factory=ServerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    shutdown: ShutdownConfig = field(default_factory=ShutdownConfig)
    workspaces: list[WorkspaceDescriptor] = field(default_factory=list)
