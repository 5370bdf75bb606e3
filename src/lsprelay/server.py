"""Relay server: accepts connections and runs one session per connection."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from lsprelay.launcher import ProcessLauncher
from lsprelay.logging import get_logger
from lsprelay.relay import SessionRelay, SessionResult
from lsprelay.transport.framing import MAX_HANDSHAKE_SIZE

log = get_logger("server")


class RelayServer:
    """TCP accept loop feeding independent session relays.

    A failing session never affects the accept loop or other sessions.
    """

    def __init__(
        self,
        host: str,
        port: int,
        launcher: ProcessLauncher | None = None,
        *,
        on_session_end: Callable[[SessionResult], None] | None = None,
        max_handshake_size: int = MAX_HANDSHAKE_SIZE,
    ) -> None:
        """Initialize the server.

        Args:
            host: Address to bind.
            port: Port to bind; 0 picks a free port (see ``port`` after start).
            launcher: Process launcher shared by all sessions.
            on_session_end: Called with the result of every finished session.
            max_handshake_size: Largest accepted handshake body in bytes.
        """
        self.host = host
        self._requested_port = port
        self.launcher = launcher or ProcessLauncher()
        self._on_session_end = on_session_end
        self._max_handshake_size = max_handshake_size
        self._server: asyncio.Server | None = None
        self._sessions: dict[asyncio.Task[None], SessionRelay] = {}

    @property
    def port(self) -> int:
        """Bound port (the requested one until the server has started)."""
        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._requested_port

    @property
    def active_sessions(self) -> list[SessionRelay]:
        return list(self._sessions.values())

    async def start(self) -> None:
        """Bind the listening socket and start accepting."""
        self._server = await asyncio.start_server(
            self._handle_connection, self.host, self._requested_port
        )
        log.info("Listening on %s:%d", self.host, self.port)

    async def serve_forever(self) -> None:
        """Start (if needed) and accept connections until cancelled."""
        if self._server is None:
            await self.start()
        assert self._server is not None
        try:
            await self._server.serve_forever()
        finally:
            await self.close()

    async def close(self) -> None:
        """Stop accepting and shut down every running session."""
        if self._server is not None:
            self._server.close()

        sessions = list(self._sessions.items())
        if sessions:
            log.info("Stopping %d active session(s)", len(sessions))
            await asyncio.gather(*(relay.abort() for _, relay in sessions), return_exceptions=True)
            await asyncio.gather(*(task for task, _ in sessions), return_exceptions=True)

        if self._server is not None:
            await self._server.wait_closed()
            self._server = None

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        relay = SessionRelay(
            reader, writer, self.launcher, max_handshake_size=self._max_handshake_size
        )
        log.debug("[%s] Accepted connection from %s", relay.session_id, relay.peer)

        task = asyncio.current_task()
        assert task is not None
        self._sessions[task] = relay
        try:
            result = await relay.run()
        except Exception:
            log.exception("[%s] Session crashed", relay.session_id)
            return
        finally:
            self._sessions.pop(task, None)

        if self._on_session_end is not None:
            try:
                self._on_session_end(result)
            except Exception:
                log.exception("[%s] on_session_end callback failed", relay.session_id)

    async def __aenter__(self) -> RelayServer:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
