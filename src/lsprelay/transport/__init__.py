"""Transport layer: handshake framing, byte pumps, and local stdio streams."""

from lsprelay.transport.framing import (
    encode_handshake,
    decode_handshake,
    parse_header,
    read_handshake,
    write_handshake,
)
from lsprelay.transport.pump import iter_lines, pump
from lsprelay.transport.stdio import open_stdio

__all__ = [
    "decode_handshake",
    "encode_handshake",
    "iter_lines",
    "open_stdio",
    "parse_header",
    "pump",
    "read_handshake",
    "write_handshake",
]
