"""Asyncio streams over the local process's stdin/stdout."""

from __future__ import annotations

import asyncio
import sys
from typing import IO, BinaryIO

from lsprelay.logging import get_logger
from lsprelay.transport.pump import ByteSink, ByteSource

log = get_logger("stdio")


class FileSource:
    """ByteSource over a blocking binary file; reads run in the default executor."""

    def __init__(self, file: BinaryIO) -> None:
        self._file = file

    async def read(self, n: int = -1) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._file.read, n)


class FileSink:
    """ByteSink over a blocking binary file.

    ``write`` only buffers; ``drain`` writes and flushes in the default
    executor, so each chunk is on disk before the next read.
    """

    def __init__(self, file: BinaryIO) -> None:
        self._file = file
        self._pending: list[bytes] = []

    def write(self, data: bytes) -> None:
        self._pending.append(data)

    async def drain(self) -> None:
        if not self._pending:
            return
        data = b"".join(self._pending)
        self._pending.clear()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_all, data)

    def _write_all(self, data: bytes) -> None:
        self._file.write(data)
        self._file.flush()


def _binary(stream: IO[bytes] | IO[str]) -> BinaryIO:
    return getattr(stream, "buffer", stream)  # type: ignore[return-value]


async def open_stdio(
    stdin: IO[bytes] | IO[str] | None = None,
    stdout: IO[bytes] | IO[str] | None = None,
) -> tuple[ByteSource, ByteSink]:
    """Wrap stdin/stdout as an async byte source/sink pair.

    Both are used as raw byte streams; nothing is decoded. Pipes, ttys and
    sockets get asyncio pipe transports. asyncio refuses regular files
    (``lsprelay client < requests.txt``), so those are read and written
    through the default executor instead.
    """
    loop = asyncio.get_running_loop()
    stdin = stdin if stdin is not None else sys.stdin
    stdout = stdout if stdout is not None else sys.stdout

    source: ByteSource
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    try:
        await loop.connect_read_pipe(lambda: protocol, stdin)
    except ValueError:
        log.debug("stdin is not a pipe, reading it in a worker thread")
        source = FileSource(_binary(stdin))
    else:
        source = reader

    sink: ByteSink
    try:
        writer_transport, writer_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, stdout
        )
    except ValueError:
        log.debug("stdout is not a pipe, writing it in a worker thread")
        sink = FileSink(_binary(stdout))
    else:
        sink = asyncio.StreamWriter(writer_transport, writer_protocol, None, loop)

    return source, sink
