"""Tests for the byte-copy loops."""

from __future__ import annotations

import pytest

from lsprelay.errors import StreamError
from lsprelay.transport.pump import iter_lines, pump
from tests.utils import BufferSink, make_reader


class FailingSource:
    async def read(self, n: int = -1) -> bytes:
        raise ConnectionResetError("peer reset")


class FailingSink:
    def write(self, data: bytes) -> None:
        pass

    async def drain(self) -> None:
        raise BrokenPipeError("pipe closed")


class ChunkedSource:
    """Source that hands out pre-split chunks, then EOF."""

    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = list(chunks)

    async def read(self, n: int = -1) -> bytes:
        return self._chunks.pop(0) if self._chunks else b""


class TestPump:
    """Tests for pump."""

    @pytest.mark.asyncio
    async def test_copies_all_bytes_in_order(self) -> None:
        data = bytes(range(256)) * 1000
        sink = BufferSink()

        copied = await pump(make_reader(data), sink, direction="test", chunk_size=4096)

        assert copied == len(data)
        assert bytes(sink.data) == data

    @pytest.mark.asyncio
    async def test_drains_after_every_chunk(self) -> None:
        sink = BufferSink()
        await pump(ChunkedSource([b"a", b"b", b"c"]), sink, direction="test")
        assert sink.drains == 3

    @pytest.mark.asyncio
    async def test_empty_source(self) -> None:
        sink = BufferSink()
        assert await pump(make_reader(b""), sink, direction="test") == 0
        assert sink.data == b""

    @pytest.mark.asyncio
    async def test_read_failure(self) -> None:
        with pytest.raises(StreamError) as exc_info:
            await pump(FailingSource(), BufferSink(), direction="inbound")
        assert exc_info.value.direction == "inbound"
        assert exc_info.value.side == "read"
        assert isinstance(exc_info.value.cause, ConnectionResetError)

    @pytest.mark.asyncio
    async def test_write_failure(self) -> None:
        with pytest.raises(StreamError) as exc_info:
            await pump(make_reader(b"data"), FailingSink(), direction="outbound")
        assert exc_info.value.side == "write"


class TestIterLines:
    """Tests for iter_lines."""

    @pytest.mark.asyncio
    async def test_splits_lines(self) -> None:
        lines = [line async for line in iter_lines(make_reader(b"one\ntwo\r\nthree\n"))]
        assert lines == [b"one", b"two", b"three"]

    @pytest.mark.asyncio
    async def test_trailing_partial_line(self) -> None:
        lines = [line async for line in iter_lines(make_reader(b"done\nno newline"))]
        assert lines == [b"done", b"no newline"]

    @pytest.mark.asyncio
    async def test_lines_split_across_chunks(self) -> None:
        source = ChunkedSource([b"hel", b"lo\nwor", b"ld\n"])
        lines = [line async for line in iter_lines(source)]
        assert lines == [b"hello", b"world"]

    @pytest.mark.asyncio
    async def test_no_line_length_limit(self) -> None:
        """Lines far beyond StreamReader's default limit come through whole."""
        long_line = b"x" * (1024 * 1024)
        lines = [line async for line in iter_lines(make_reader(long_line + b"\nshort\n"))]
        assert lines == [long_line, b"short"]

    @pytest.mark.asyncio
    async def test_read_failure(self) -> None:
        with pytest.raises(StreamError, match="stderr read failed"):
            async for _ in iter_lines(FailingSource()):
                pass
