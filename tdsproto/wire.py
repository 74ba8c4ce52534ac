"""Primitive value encodings used by the TDS protocol."""

from __future__ import annotations

import enum
import struct
from typing import BinaryIO


class PacketType(enum.IntEnum):
    """TDS packet types."""

    SQL_BATCH = 1
    RPC_REQUEST = 3
    REPLY = 4
    ATTENTION = 6
    BULK_LOAD_BCP = 7
    FED_AUTH_TOKEN = 8
    TRANS_MGR_REQ = 14
    NORMAL = 15
    LOGIN7 = 16
    SSPI_MESSAGE = 17
    PRELOGIN = 18


class WireError(ValueError):
    """Raised when wire data is truncated, malformed or out of range."""


_USHORT = struct.Struct("<H")


def str_to_ucs2(text: str) -> bytes:
    """Encode text as little-endian UTF-16."""
    return text.encode("utf-16-le")


def ucs2_to_str(data: bytes) -> str:
    """Decode little-endian UTF-16 bytes; unpaired surrogates become U+FFFD."""
    if len(data) % 2:
        raise WireError(f"illegal UCS2 string length: {len(data)}")
    return bytes(data).decode("utf-16-le", errors="replace")


def read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read exactly ``size`` bytes from ``stream`` or raise WireError."""
    if size < 0:
        raise ValueError(f"negative read size: {size}")
    chunks = []
    remaining = size
    while remaining:
        chunk = stream.read(remaining)
        if not chunk:
            raise WireError(
                f"unexpected end of stream: wanted {size} bytes, got {size - remaining}"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_byte(stream: BinaryIO) -> int:
    """Read one unsigned byte."""
    return read_exact(stream, 1)[0]


def read_ushort(stream: BinaryIO) -> int:
    """Read a little-endian unsigned 16-bit integer."""
    return _USHORT.unpack(read_exact(stream, 2))[0]


def read_ucs2(stream: BinaryIO, numchars: int) -> str:
    """Read ``numchars`` UTF-16 code units and decode them."""
    return ucs2_to_str(read_exact(stream, numchars * 2))


def read_us_varchar(stream: BinaryIO) -> str:
    """Read a string prefixed with a 16-bit character count."""
    return read_ucs2(stream, read_ushort(stream))


def write_us_varchar(text: str) -> bytes:
    """Encode a string prefixed with a 16-bit character count."""
    encoded = str_to_ucs2(text)
    numchars = len(encoded) // 2
    if numchars > 0xFFFF:
        raise WireError("invalid size for US_VARCHAR")
    return _USHORT.pack(numchars) + encoded


def read_b_varchar(stream: BinaryIO) -> str:
    """Read a string prefixed with an 8-bit character count."""
    numchars = read_byte(stream)
    if numchars == 0:
        return ""
    return read_ucs2(stream, numchars)


def write_b_varchar(text: str) -> bytes:
    """Encode a string prefixed with an 8-bit character count."""
    encoded = str_to_ucs2(text)
    numchars = len(encoded) // 2
    if numchars > 0xFF:
        raise WireError("invalid size for B_VARCHAR")
    return bytes([numchars]) + encoded


def read_b_var_byte(stream: BinaryIO) -> bytes:
    """Read a byte string prefixed with an 8-bit length."""
    return read_exact(stream, read_byte(stream))