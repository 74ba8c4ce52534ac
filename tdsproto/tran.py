"""Transaction manager request payloads."""

from __future__ import annotations

import enum
import struct
from typing import Iterable

from tdsproto.headers import Header, encode_all_headers
from tdsproto.wire import write_b_varchar


class TransactionRequest(enum.IntEnum):
    """Transaction manager request types."""

    GET_DTC_ADDR = 0
    PROPAGATE_XACT = 1
    BEGIN_XACT = 5
    PROMOTE_XACT = 6
    COMMIT_XACT = 7
    ROLLBACK_XACT = 8
    SAVE_XACT = 9


class IsolationLevel(enum.IntEnum):
    """Transaction isolation levels."""

    USE_CURRENT = 0
    READ_UNCOMMITTED = 1
    READ_COMMITTED = 2
    REPEATABLE_READ = 3
    SERIALIZABLE = 4
    SNAPSHOT = 5


BEGIN_XACT_FLAG = 1


def encode_begin_xact(headers: Iterable[Header], isolation: int, name: str) -> bytes:
    """Build the payload of a begin-transaction request."""
    return b"".join(
        (
            encode_all_headers(headers),
            struct.pack("<HB", TransactionRequest.BEGIN_XACT, int(isolation)),
            write_b_varchar(name),
        )
    )


def _encode_end_xact(
    request: TransactionRequest,
    headers: Iterable[Header],
    name: str,
    flags: int,
    isolation: int,
) -> bytes:
    parts = [
        encode_all_headers(headers),
        struct.pack("<H", request),
        write_b_varchar(name),
        struct.pack("<B", flags),
    ]
    if flags & BEGIN_XACT_FLAG:
        # The new transaction carries the same name as the finished one.
        parts.append(struct.pack("<B", int(isolation)))
        parts.append(write_b_varchar(name))
    return b"".join(parts)


def encode_commit_xact(
    headers: Iterable[Header], name: str, flags: int, isolation: int, new_name: str
) -> bytes:
    """Build the payload of a commit-transaction request."""
    return _encode_end_xact(TransactionRequest.COMMIT_XACT, headers, name, flags, isolation)


def encode_rollback_xact(
    headers: Iterable[Header], name: str, flags: int, isolation: int, new_name: str
) -> bytes:
    """Build the payload of a rollback-transaction request."""
    return _encode_end_xact(
        TransactionRequest.ROLLBACK_XACT, headers, name, flags, isolation
    )