"""Relay client: makes a remote backend look like a local one.

The client connects to the server, sends the workspace handshake, and then
relays its own stdin/stdout over the connection until the server closes it.
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path

from lsprelay.errors import ClientError, StreamError
from lsprelay.logging import get_logger
from lsprelay.transport.framing import write_handshake
from lsprelay.transport.pump import ByteSink, ByteSource, pump
from lsprelay.transport.stdio import open_stdio
from lsprelay.workspace import WorkspaceDescriptor, resolve

log = get_logger("client")


def select_workspace(
    cwd: str | Path,
    workspaces: list[WorkspaceDescriptor],
) -> WorkspaceDescriptor:
    """Resolve the workspace for ``cwd`` or fail.

    Raises:
        ClientError: If no configured root contains ``cwd``.
    """
    descriptor = resolve(cwd, workspaces)
    if descriptor is None:
        raise ClientError(f"No workspace configured for {cwd}")
    log.info("Target workspace: root=%s command=%s", descriptor.root, descriptor.command)
    return descriptor


class RelayClient:
    """One client connection to a relay server."""

    def __init__(self, host: str, port: int, descriptor: WorkspaceDescriptor) -> None:
        self.host = host
        self.port = port
        self.descriptor = descriptor
        self.bytes_sent = 0
        self.bytes_received = 0

    async def run(
        self,
        local_in: ByteSource | None = None,
        local_out: ByteSink | None = None,
    ) -> None:
        """Relay ``local_in``/``local_out`` (default: process stdio) to the server.

        Returns when the server closes the connection, which happens once the
        remote backend has exited.

        Raises:
            ClientError: If local stdio cannot be opened or the server
                cannot be reached.
        """
        # Before connecting: a failure here must not spawn a backend remotely.
        if local_in is None or local_out is None:
            try:
                stdin_source, stdout_sink = await open_stdio()
            except (OSError, ValueError) as e:
                raise ClientError(f"Cannot open local stdio: {e}") from e
            if local_in is None:
                local_in = stdin_source
            if local_out is None:
                local_out = stdout_sink

        try:
            sock_reader, sock_writer = await asyncio.open_connection(self.host, self.port)
        except OSError as e:
            raise ClientError(f"Cannot connect to {self.host}:{self.port}: {e}") from e
        log.info("Connected to %s:%d", self.host, self.port)

        try:
            await write_handshake(sock_writer, self.descriptor)

            upstream = asyncio.create_task(self._upstream(local_in, sock_writer))
            try:
                await self._downstream(sock_reader, local_out)
            finally:
                upstream.cancel()
                await asyncio.gather(upstream, return_exceptions=True)
        except OSError as e:
            raise ClientError(f"Connection to {self.host}:{self.port} failed: {e}") from e
        finally:
            sock_writer.close()
            with contextlib.suppress(OSError):
                await sock_writer.wait_closed()

        log.info("Session finished (sent=%d received=%d)", self.bytes_sent, self.bytes_received)

    async def _upstream(self, local_in: ByteSource, sock_writer: asyncio.StreamWriter) -> None:
        """Local stdin -> server."""
        try:
            self.bytes_sent = await pump(local_in, sock_writer, direction="upstream")
        except StreamError as e:
            log.error("%s", e)
            return

        log.debug("Local input reached EOF")
        # Half-close so the backend sees EOF on its stdin.
        if sock_writer.can_write_eof():
            with contextlib.suppress(OSError):
                sock_writer.write_eof()

    async def _downstream(self, sock_reader: asyncio.StreamReader, local_out: ByteSink) -> None:
        """Server -> local stdout."""
        try:
            self.bytes_received = await pump(sock_reader, local_out, direction="downstream")
        except StreamError as e:
            log.error("%s", e)
        else:
            log.debug("Server closed the connection")


async def run_client(
    host: str,
    port: int,
    workspaces: list[WorkspaceDescriptor],
    cwd: str | Path | None = None,
) -> None:
    """Resolve the workspace for ``cwd`` and relay process stdio to the server.

    Raises:
        ClientError: If no workspace matches or the server is unreachable.
    """
    descriptor = select_workspace(cwd if cwd is not None else Path.cwd(), workspaces)
    await RelayClient(host, port, descriptor).run()
