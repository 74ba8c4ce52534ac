"""Pre-login handshake payloads and SQL Server Browser replies."""

from __future__ import annotations

import enum
import struct
from typing import Mapping, Optional

from tdsproto.login import FedAuthExtension, FedAuthLibrary


class PreloginField(enum.IntEnum):
    """Option tokens of the PRELOGIN message."""

    VERSION = 0
    ENCRYPTION = 1
    INSTOPT = 2
    THREADID = 3
    MARS = 4
    TRACEID = 5
    FED_AUTH_REQUIRED = 6
    NONCEOPT = 7
    TERMINATOR = 0xFF


class EncryptMode(enum.IntEnum):
    """Encryption negotiation values."""

    OFF = 0
    ON = 1
    NOT_SUPPORTED = 2
    REQUIRED = 3


class PreloginError(ValueError):
    """Raised when a PRELOGIN exchange is malformed or cannot be agreed on."""


_ENTRY = struct.Struct(">BHH")
_OFFSET = struct.Struct(">HH")


def encode_prelogin(fields: Mapping[int, bytes]) -> bytes:
    """Encode PRELOGIN options: sorted option table, terminator, then values."""
    keys = sorted(fields)
    offset = _ENTRY.size * len(keys) + 1
    table = bytearray()
    for key in keys:
        size = len(fields[key])
        if size > 0xFFFF or offset > 0xFFFF:
            raise PreloginError(f"PRELOGIN option {key} does not fit in the message")
        table += _ENTRY.pack(key, offset, size)
        offset += size
    table.append(PreloginField.TERMINATOR)
    return bytes(table) + b"".join(bytes(fields[key]) for key in keys)


def decode_prelogin(payload: bytes) -> dict[int, bytes]:
    """Decode a PRELOGIN response payload into a mapping of option to value."""
    payload = bytes(payload)
    if not payload:
        raise PreloginError(
            "invalid empty PRELOGIN response, it must contain at least one byte"
        )
    results: dict[int, bytes] = {}
    offset = 0
    while True:
        if offset >= len(payload):
            raise PreloginError("PRELOGIN response is missing its terminator")
        record_type = payload[offset]
        if record_type == PreloginField.TERMINATOR:
            return results
        if offset + _ENTRY.size > len(payload):
            raise PreloginError("PRELOGIN option table is truncated")
        record_offset, record_length = _OFFSET.unpack_from(payload, offset + 1)
        end = record_offset + record_length
        if end > len(payload):
            raise PreloginError(
                f"PRELOGIN option {record_type} points past the end of the response"
            )
        results[record_type] = payload[record_offset:end]
        offset += _ENTRY.size


def prepare_prelogin_fields(
    instance: str,
    encrypt: bool,
    disable_encryption: bool,
    fed_auth: Optional[FedAuthExtension],
) -> dict[int, bytes]:
    """Build the options the client sends in its PRELOGIN message."""
    if disable_encryption:
        mode = EncryptMode.NOT_SUPPORTED
    elif encrypt:
        mode = EncryptMode.ON
    else:
        mode = EncryptMode.OFF

    fields: dict[int, bytes] = {
        PreloginField.VERSION: bytes(6),
        PreloginField.ENCRYPTION: bytes([mode]),
        PreloginField.INSTOPT: instance.encode("utf-8") + b"\x00",
        PreloginField.THREADID: bytes(4),
        PreloginField.MARS: b"\x00",  # MARS disabled
    }
    if fed_auth is not None and fed_auth.library != FedAuthLibrary.RESERVED:
        fields[PreloginField.FED_AUTH_REQUIRED] = b"\x01"
    return fields


def interpret_prelogin_response(
    fields: Mapping[int, bytes],
    encrypt: bool,
    fed_auth: Optional[FedAuthExtension],
) -> int:
    """Check the server's PRELOGIN options and return its encryption mode.

    Records on ``fed_auth`` whether the federated authentication flag must be
    echoed back to the server.
    """
    fed_auth_support = fields.get(PreloginField.FED_AUTH_REQUIRED)
    if fed_auth_support is not None:
        if len(fed_auth_support) != 1:
            raise PreloginError(
                "Federated authentication flag length should be 1: "
                f"is {len(fed_auth_support)}"
            )
        if fed_auth is not None:
            fed_auth.echo = fed_auth_support[0] != 0
    elif fed_auth is not None and fed_auth.library != FedAuthLibrary.RESERVED:
        raise PreloginError("Federated authentication is not supported by the server")

    encrypt_bytes = fields.get(PreloginField.ENCRYPTION)
    if not encrypt_bytes:
        raise PreloginError("encrypt negotiation failed")
    mode = encrypt_bytes[0]
    if encrypt and mode in (EncryptMode.NOT_SUPPORTED, EncryptMode.OFF):
        raise PreloginError("server does not support encryption")
    try:
        return EncryptMode(mode)
    except ValueError:
        return mode


def parse_instances(message: bytes) -> dict[str, dict[str, str]]:
    """Parse a SQL Server Browser reply into instance name -> properties."""
    results: dict[str, dict[str, str]] = {}
    message = bytes(message)
    if len(message) <= 3 or message[0] != 5:
        return results

    tokens = message[3:].decode("utf-8", errors="replace").split(";")
    properties: dict[str, str] = {}
    name: Optional[str] = None
    for token in tokens:
        if name is not None:
            properties[name] = token
            name = None
        elif token:
            name = token
        elif properties:
            results[properties.get("InstanceName", "").upper()] = properties
            properties = {}
        else:
            break
    return results