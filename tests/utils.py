"""Shared helpers for relay tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from lsprelay.launcher import ProcessHandle, ProcessLauncher
from lsprelay.relay import SessionResult
from lsprelay.server import RelayServer
from lsprelay.transport.framing import encode_handshake
from lsprelay.workspace import WorkspaceDescriptor

TIMEOUT = 10.0


class SpyLauncher(ProcessLauncher):
    """Launcher that remembers every process it started.

    Subclasses may set ``handle_class`` to wrap each process in a
    ProcessHandle subclass.
    """

    handle_class: type[ProcessHandle] = ProcessHandle

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.spawned: list[ProcessHandle] = []

    async def spawn(self, descriptor: WorkspaceDescriptor) -> ProcessHandle:
        handle = await super().spawn(descriptor)
        if self.handle_class is not ProcessHandle:
            handle = self.handle_class(handle._process, descriptor, self.shutdown)
        self.spawned.append(handle)
        return handle


async def wait_for_spawn(launcher: SpyLauncher, timeout: float = TIMEOUT) -> ProcessHandle:
    """Poll until ``launcher`` has started its first process."""
    for _ in range(int(timeout / 0.05)):
        if launcher.spawned:
            return launcher.spawned[0]
        await asyncio.sleep(0.05)
    raise AssertionError("no process was spawned")


class BufferSink:
    """In-memory stand-in for a StreamWriter."""

    def __init__(self) -> None:
        self.data = bytearray()
        self.drains = 0

    def write(self, data: bytes) -> None:
        self.data += data

    async def drain(self) -> None:
        self.drains += 1


def make_reader(data: bytes, *, eof: bool = True) -> asyncio.StreamReader:
    """Create a StreamReader pre-loaded with ``data``."""
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


class ResultCollector:
    """on_session_end callback that lets tests await finished sessions."""

    def __init__(self) -> None:
        self.results: list[SessionResult] = []
        self._queue: asyncio.Queue[SessionResult] = asyncio.Queue()

    def __call__(self, result: SessionResult) -> None:
        self.results.append(result)
        self._queue.put_nowait(result)

    async def next(self, timeout: float = TIMEOUT) -> SessionResult:
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)


@asynccontextmanager
async def running_server(
    launcher: ProcessLauncher | None = None,
) -> AsyncIterator[tuple[RelayServer, ResultCollector]]:
    """Start a RelayServer on a free local port."""
    collector = ResultCollector()
    server = RelayServer("127.0.0.1", 0, launcher, on_session_end=collector)
    await server.start()
    try:
        yield server, collector
    finally:
        await server.close()


async def connect(
    port: int,
    descriptor: WorkspaceDescriptor | None = None,
    *,
    payload: bytes = b"",
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Connect, send the handshake for ``descriptor`` plus ``payload``."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    data = (encode_handshake(descriptor) if descriptor is not None else b"") + payload
    if data:
        writer.write(data)
        await writer.drain()
    return reader, writer


async def read_to_eof(reader: asyncio.StreamReader, timeout: float = TIMEOUT) -> bytes:
    return await asyncio.wait_for(reader.read(), timeout=timeout)
