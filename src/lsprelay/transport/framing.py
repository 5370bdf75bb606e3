"""Handshake framing with Content-Length headers.

The first message on every connection is the workspace descriptor, framed
the same way LSP frames its messages:

    Content-Length: <length>\r\n
    \r\n
    <json-record>

Everything after the body belongs to the relayed protocol and is left
untouched in the reader's buffer.
"""

from __future__ import annotations

import asyncio
import json

from pydantic import ValidationError

from lsprelay.errors import HandshakeError
from lsprelay.workspace import WorkspaceDescriptor

# Header constants
CONTENT_LENGTH = "Content-Length"
HEADER_ENCODING = "ascii"
CONTENT_ENCODING = "utf-8"
CRLF = b"\r\n"

MAX_HANDSHAKE_SIZE = 1024 * 1024
MAX_HEADER_LINES = 16


def parse_header(header_bytes: bytes) -> dict[str, str]:
    """Parse handshake headers from raw bytes.

    Args:
        header_bytes: Raw header bytes without the blank separator line,
            e.g. b"Content-Length: 57\\r\\nContent-Type: application/json".

    Returns:
        Dictionary mapping header names to values.

    Raises:
        HandshakeError: If headers are malformed or Content-Length is missing/invalid.
    """
    headers: dict[str, str] = {}

    if not header_bytes:
        raise HandshakeError("Empty header block")

    try:
        header_text = header_bytes.decode(HEADER_ENCODING)
    except UnicodeDecodeError as e:
        raise HandshakeError(f"Header contains non-ASCII characters: {e}") from e

    for line in header_text.split("\r\n"):
        if not line:
            continue

        colon_pos = line.find(":")
        if colon_pos == -1:
            raise HandshakeError(f"Malformed header line (no colon): {line!r}")

        name = line[:colon_pos].strip()
        value = line[colon_pos + 1 :].strip()
        if not name:
            raise HandshakeError(f"Empty header name in line: {line!r}")

        headers[name] = value

    if CONTENT_LENGTH not in headers:
        raise HandshakeError("Missing required Content-Length header")

    try:
        length = int(headers[CONTENT_LENGTH])
    except ValueError as e:
        raise HandshakeError(f"Invalid Content-Length value: {headers[CONTENT_LENGTH]!r}") from e

    if length < 0:
        raise HandshakeError(f"Negative Content-Length: {length}")

    return headers


def encode_handshake(descriptor: WorkspaceDescriptor) -> bytes:
    """Serialize a descriptor into a complete handshake frame."""
    body = json.dumps(descriptor.to_wire(), separators=(",", ":")).encode(CONTENT_ENCODING)
    header = f"{CONTENT_LENGTH}: {len(body)}\r\n\r\n".encode(HEADER_ENCODING)
    return header + body


def decode_handshake(body: bytes) -> WorkspaceDescriptor:
    """Decode a handshake body into a descriptor.

    Raises:
        HandshakeError: If the body is not a valid descriptor record.
    """
    try:
        content = body.decode(CONTENT_ENCODING)
    except UnicodeDecodeError as e:
        raise HandshakeError(f"Invalid UTF-8 in handshake body: {e}") from e

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise HandshakeError(f"Invalid JSON in handshake body: {e}") from e

    if not isinstance(data, dict):
        raise HandshakeError(f"Handshake must be a JSON object, got {type(data).__name__}")

    try:
        return WorkspaceDescriptor.model_validate(data)
    except ValidationError as e:
        raise HandshakeError(f"Invalid workspace descriptor: {e}") from e


async def read_handshake(
    reader: asyncio.StreamReader,
    *,
    max_size: int = MAX_HANDSHAKE_SIZE,
) -> WorkspaceDescriptor | None:
    """Read exactly one handshake frame from a fresh connection.

    Returns:
        The decoded descriptor, or None if the peer closed the connection
        before sending anything.

    Raises:
        HandshakeError: If the frame is truncated, oversized, or invalid.
    """
    header_bytes = b""
    lines = 0

    while True:
        try:
            line = await reader.readuntil(CRLF)
        except asyncio.IncompleteReadError as e:
            if header_bytes == b"" and not e.partial:
                return None
            raise HandshakeError("Unexpected EOF while reading handshake headers") from e
        except asyncio.LimitOverrunError as e:
            raise HandshakeError(f"Handshake header line too long: {e}") from e

        if line == CRLF:
            if header_bytes == b"":
                raise HandshakeError("Empty header block")
            break

        lines += 1
        if lines > MAX_HEADER_LINES:
            raise HandshakeError("Too many handshake header lines")
        header_bytes += line

    headers = parse_header(header_bytes.removesuffix(CRLF))
    content_length = int(headers[CONTENT_LENGTH])

    if content_length > max_size:
        raise HandshakeError(f"Handshake size {content_length} exceeds maximum {max_size}")

    try:
        body = await reader.readexactly(content_length)
    except asyncio.IncompleteReadError as e:
        raise HandshakeError(
            f"Incomplete handshake body: expected {content_length} bytes, got {len(e.partial)}"
        ) from e

    return decode_handshake(body)


async def write_handshake(
    writer: asyncio.StreamWriter,
    descriptor: WorkspaceDescriptor,
) -> None:
    """Send the handshake frame and wait for it to reach the OS buffer."""
    writer.write(encode_handshake(descriptor))
    await writer.drain()
