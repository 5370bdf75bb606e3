"""Byte-copy loops between asyncio streams."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Protocol

from lsprelay.errors import StreamError

CHUNK_SIZE = 64 * 1024


class ByteSource(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


class ByteSink(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


async def pump(
    source: ByteSource,
    sink: ByteSink,
    *,
    direction: str,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """Copy bytes from ``source`` to ``sink`` until end-of-stream.

    Each chunk is written and drained before the next read, so bytes keep
    their order and backpressure from the sink reaches the source.

    Args:
        source: Stream to read from (``read()`` returning b"" on EOF).
        sink: Stream to write to.
        direction: Loop name, used in errors.
        chunk_size: Maximum bytes per read.

    Returns:
        Number of bytes copied.

    Raises:
        StreamError: If reading or writing fails. ``side`` tells which.
    """
    total = 0
    while True:
        try:
            chunk = await source.read(chunk_size)
        except (OSError, asyncio.IncompleteReadError) as e:
            raise StreamError(direction, "read", e) from e
        if not chunk:
            return total

        try:
            sink.write(chunk)
            await sink.drain()
        except (OSError, RuntimeError) as e:
            # RuntimeError: write on a transport that is already closing
            raise StreamError(direction, "write", e) from e
        total += len(chunk)


async def iter_lines(
    source: ByteSource,
    *,
    direction: str = "stderr",
    chunk_size: int = CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """Yield newline-terminated lines from ``source`` without a length limit.

    ``StreamReader.readline`` gives up on lines longer than the reader's
    limit, so lines are assembled from raw chunks here instead. A trailing
    unterminated line is yielded at EOF. Line terminators are stripped.

    Raises:
        StreamError: If reading fails.
    """
    pending = bytearray()
    while True:
        try:
            chunk = await source.read(chunk_size)
        except OSError as e:
            raise StreamError(direction, "read", e) from e
        if not chunk:
            break

        pending += chunk
        start = 0
        while (end := pending.find(b"\n", start)) != -1:
            yield bytes(pending[start:end]).rstrip(b"\r")
            start = end + 1
        del pending[:start]

    if pending:
        yield bytes(pending).rstrip(b"\r")
