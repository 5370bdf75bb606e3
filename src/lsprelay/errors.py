"""Error taxonomy for lsprelay.

All errors are session-local: the server logs them and keeps accepting
connections. Nothing is ever sent back to the remote peer.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all lsprelay errors."""

    pass


class HandshakeError(RelayError):
    """The initial handshake frame could not be read or decoded.

    Raised when:
    - The Content-Length header is missing, malformed, or too large
    - The connection closes in the middle of the frame
    - The body is not valid JSON or not a valid workspace descriptor
    """

    pass


class SpawnError(RelayError):
    """The backend process could not be created."""

    def __init__(self, message: str, *, command: str = "", cwd: str = "") -> None:
        super().__init__(message)
        self.command = command
        self.cwd = cwd


class StreamError(RelayError):
    """I/O failure inside one forwarding loop.

    Attributes:
        direction: Name of the loop ("inbound", "outbound", "stderr", ...).
        side: "read" if the source failed, "write" if the sink failed.
    """

    def __init__(self, direction: str, side: str, cause: BaseException) -> None:
        super().__init__(f"{direction} {side} failed: {cause!r}")
        self.direction = direction
        self.side = side
        self.cause = cause


class ProcessWaitError(RelayError):
    """The OS failed to report termination of the backend process."""

    pass


class ConfigError(RelayError):
    """Invalid configuration or workspace list."""

    pass


class ClientError(RelayError):
    """Client-side failure before relaying starts (no workspace, no server)."""

    pass
