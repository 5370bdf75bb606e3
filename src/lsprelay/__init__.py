"""lsprelay - run language servers on a remote host over a TCP relay."""

__version__ = "0.1.0"

from lsprelay.errors import (
    ClientError,
    ConfigError,
    HandshakeError,
    ProcessWaitError,
    RelayError,
    SpawnError,
    StreamError,
)
from lsprelay.launcher import ProcessHandle, ProcessLauncher
from lsprelay.relay import SessionRelay, SessionResult, SessionState
from lsprelay.server import RelayServer
from lsprelay.workspace import WorkspaceDescriptor, resolve

__all__ = [
    "ClientError",
    "ConfigError",
    "HandshakeError",
    "ProcessHandle",
    "ProcessLauncher",
    "ProcessWaitError",
    "RelayError",
    "RelayServer",
    "SessionRelay",
    "SessionResult",
    "SessionState",
    "SpawnError",
    "StreamError",
    "WorkspaceDescriptor",
    "resolve",
]
