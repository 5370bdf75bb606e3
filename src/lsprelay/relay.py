"""Session relay: one connection, one backend process.

A session reads the workspace handshake from a freshly accepted connection,
spawns the backend, and runs four concurrent units until the process exits:

- inbound:     connection -> process stdin
- outbound:    process stdout -> connection
- diagnostics: process stderr -> ``lsprelay.backend`` logger
- exit watcher: process wait()

State machine:
    AWAITING_HANDSHAKE -> LAUNCHING -> RELAYING -> DRAINING -> CLOSED

Every stream handle is owned by exactly one unit, so no locking is needed.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from dataclasses import dataclass
from enum import Enum

from lsprelay.errors import HandshakeError, ProcessWaitError, SpawnError, StreamError
from lsprelay.launcher import ProcessHandle, ProcessLauncher
from lsprelay.logging import TRACE, get_logger
from lsprelay.transport.framing import MAX_HANDSHAKE_SIZE, read_handshake
from lsprelay.transport.pump import iter_lines, pump
from lsprelay.workspace import WorkspaceDescriptor

log = get_logger("relay")
backend_log = get_logger("backend")


class SessionState(Enum):
    """Lifecycle of a relay session."""

    AWAITING_HANDSHAKE = "awaiting_handshake"
    LAUNCHING = "launching"
    RELAYING = "relaying"
    DRAINING = "draining"
    CLOSED = "closed"


@dataclass
class SessionResult:
    """Summary of a finished session.

    Attributes:
        session_id: Short id used in log lines.
        peer: Remote address as reported by the socket.
        root: Workspace root, or None if no handshake was decoded.
        state: Always CLOSED once the session has finished.
        exit_code: Backend exit status, or None if no process ran.
        bytes_in: Bytes delivered from the connection to the process.
        bytes_out: Bytes delivered from the process to the connection.
        error: Error that ended the session early, if any.
    """

    session_id: str
    peer: str
    root: str | None
    state: SessionState
    exit_code: int | None
    bytes_in: int
    bytes_out: int
    error: Exception | None = None

    @property
    def spawned(self) -> bool:
        return self.exit_code is not None


class SessionRelay:
    """Relays bytes between one connection and one backend process."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        launcher: ProcessLauncher,
        *,
        max_handshake_size: int = MAX_HANDSHAKE_SIZE,
    ) -> None:
        self.session_id = uuid.uuid4().hex[:8]
        self._reader = reader
        self._writer = writer
        self._launcher = launcher
        self._max_handshake_size = max_handshake_size

        peer = writer.get_extra_info("peername")
        self.peer = f"{peer[0]}:{peer[1]}" if isinstance(peer, tuple) else str(peer)

        self.state = SessionState.AWAITING_HANDSHAKE
        self.descriptor: WorkspaceDescriptor | None = None
        self.process: ProcessHandle | None = None
        self.exit_code: int | None = None
        self.error: Exception | None = None
        self.bytes_in = 0
        self.bytes_out = 0

        self._reaper: asyncio.Task[None] | None = None

    def _set_state(self, state: SessionState) -> None:
        log.log(TRACE, "[%s] %s -> %s", self.session_id, self.state.value, state.value)
        self.state = state

    async def run(self) -> SessionResult:
        """Run the session to completion.

        Never raises for session-level failures: they are logged and
        recorded on the result. Cancellation still propagates after cleanup.
        """
        try:
            descriptor = await self._await_handshake()
            if descriptor is not None:
                self.process = await self._launch(descriptor)
                if self.process is not None:
                    await self._relay(self.process)
        finally:
            await self._close()

        return self.result()

    def result(self) -> SessionResult:
        return SessionResult(
            session_id=self.session_id,
            peer=self.peer,
            root=self.descriptor.root if self.descriptor else None,
            state=self.state,
            exit_code=self.exit_code,
            bytes_in=self.bytes_in,
            bytes_out=self.bytes_out,
            error=self.error,
        )

    # -- AWAITING_HANDSHAKE ---------------------------------------------------

    async def _await_handshake(self) -> WorkspaceDescriptor | None:
        try:
            descriptor = await read_handshake(self._reader, max_size=self._max_handshake_size)
        except HandshakeError as e:
            log.error("[%s] Bad handshake from %s: %s", self.session_id, self.peer, e)
            self.error = e
            return None
        except OSError as e:
            log.error("[%s] Connection error during handshake: %s", self.session_id, e)
            self.error = e
            return None

        if descriptor is None:
            log.info("[%s] %s closed before handshake", self.session_id, self.peer)
            return None

        log.info(
            "[%s] Handshake from %s: root=%s command=%s",
            self.session_id,
            self.peer,
            descriptor.root,
            descriptor.command,
        )
        self.descriptor = descriptor
        self._set_state(SessionState.LAUNCHING)
        return descriptor

    # -- LAUNCHING ------------------------------------------------------------

    async def _launch(self, descriptor: WorkspaceDescriptor) -> ProcessHandle | None:
        try:
            return await self._launcher.spawn(descriptor)
        except SpawnError as e:
            log.error("[%s] Failed to spawn backend: %s", self.session_id, e)
            self.error = e
            return None

    # -- RELAYING / DRAINING --------------------------------------------------

    async def _relay(self, process: ProcessHandle) -> None:
        self._set_state(SessionState.RELAYING)

        inbound = asyncio.create_task(self._inbound(process), name=f"{self.session_id}-inbound")
        outbound = asyncio.create_task(self._outbound(process), name=f"{self.session_id}-outbound")
        diagnostics = asyncio.create_task(
            self._diagnostics(process), name=f"{self.session_id}-stderr"
        )
        loops = (inbound, outbound, diagnostics)

        try:
            self.exit_code = await self._watch_exit(process)

            self._set_state(SessionState.DRAINING)
            # Process exit closes stdout/stderr; flush what is left to the peer.
            self._log_failures(await asyncio.gather(outbound, diagnostics, return_exceptions=True))

            # Closing the connection ends the inbound read.
            self._close_connection()
            if not inbound.done():
                inbound.cancel()
            self._log_failures(await asyncio.gather(inbound, return_exceptions=True))
        finally:
            for task in loops:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*loops, return_exceptions=True)

    def _log_failures(self, results: list[object]) -> None:
        for result in results:
            if isinstance(result, Exception):
                log.error("[%s] Forwarding loop crashed: %r", self.session_id, result)

    async def _watch_exit(self, process: ProcessHandle) -> int | None:
        try:
            code = await process.wait()
        except (OSError, ChildProcessError) as e:
            err = ProcessWaitError(f"Failed to wait on pid {process.pid}: {e}")
            log.error("[%s] %s", self.session_id, err)
            self.error = err
            process.kill()
            return None

        log.info("[%s] Backend pid %d exited with status %s", self.session_id, process.pid, code)
        return code

    async def _inbound(self, process: ProcessHandle) -> None:
        """Connection -> process stdin."""
        try:
            await pump(self._reader, _CountingSink(process.stdin, self, "bytes_in"),
                       direction="inbound")
        except StreamError as e:
            log.warning("[%s] %s", self.session_id, e)
            if e.side == "read":
                self._on_peer_gone()
        else:
            log.debug("[%s] Connection reached EOF", self.session_id)
            self._on_peer_gone()
        finally:
            process.close_stdin()

    async def _outbound(self, process: ProcessHandle) -> None:
        """Process stdout -> connection."""
        try:
            await pump(process.stdout, _CountingSink(self._writer, self, "bytes_out"),
                       direction="outbound")
        except StreamError as e:
            log.warning("[%s] %s", self.session_id, e)
            if e.side == "write":
                self._on_peer_gone()
        else:
            log.debug("[%s] Backend stdout reached EOF", self.session_id)

    async def _diagnostics(self, process: ProcessHandle) -> None:
        """Process stderr -> diagnostic sink, one log record per line."""
        try:
            async for line in iter_lines(process.stderr, direction="stderr"):
                backend_log.info("[%s] %s", self.session_id, line.decode("utf-8", errors="replace"))
        except StreamError as e:
            log.warning("[%s] %s", self.session_id, e)

    def _on_peer_gone(self) -> None:
        """The remote side can no longer talk to the backend."""
        if self._reaper is not None or self.process is None:
            return
        if self.process.returncode is not None or self.state is not SessionState.RELAYING:
            return
        log.info("[%s] Peer %s disconnected, stopping backend", self.session_id, self.peer)
        self._reaper = asyncio.create_task(self._reap(self.process))

    async def _reap(self, process: ProcessHandle) -> None:
        process.close_stdin()
        grace = self._launcher.shutdown.disconnect_grace
        try:
            await asyncio.wait_for(asyncio.shield(process.wait()), timeout=grace)
        except asyncio.TimeoutError:
            log.info("[%s] Backend still running after %.1fs, terminating", self.session_id, grace)
            await process.terminate()

    async def abort(self) -> None:
        """Stop the backend and drop the connection (server shutdown).

        ``run()`` then drains and finishes on its own.
        """
        self._close_connection()
        if self._reaper is not None:
            await asyncio.gather(asyncio.shield(self._reaper), return_exceptions=True)
        if self.process is not None and self.process.returncode is None:
            self.process.close_stdin()
            await self.process.terminate()

    # -- CLOSED ---------------------------------------------------------------

    def _close_connection(self) -> None:
        if not self._writer.is_closing():
            self._writer.close()

    async def _close(self) -> None:
        self._close_connection()

        # The disconnect reaper may still be escalating; let it finish first.
        if self._reaper is not None:
            await asyncio.gather(asyncio.shield(self._reaper), return_exceptions=True)

        process = self.process
        if process is not None and process.returncode is None:
            log.warning("[%s] Backend pid %d still running at close, terminating",
                        self.session_id, process.pid)
            # Shielded so a cancelled session still reaps its child.
            await asyncio.shield(process.terminate())

        with contextlib.suppress(OSError):
            await self._writer.wait_closed()

        self._set_state(SessionState.CLOSED)
        log.info(
            "[%s] Session closed (exit=%s in=%d out=%d)",
            self.session_id,
            self.exit_code,
            self.bytes_in,
            self.bytes_out,
        )


class _CountingSink:
    """Sink wrapper that keeps a live byte counter on the session."""

    def __init__(self, writer: asyncio.StreamWriter, session: SessionRelay, counter: str) -> None:
        self._writer = writer
        self._session = session
        self._counter = counter
        self._pending = 0

    def write(self, data: bytes) -> None:
        self._writer.write(data)
        self._pending = len(data)

    async def drain(self) -> None:
        await self._writer.drain()
        setattr(self._session, self._counter, getattr(self._session, self._counter) + self._pending)
        self._pending = 0
