"""Packet data stream headers (ALL_HEADERS) and SQL batch payloads."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Iterable

from tdsproto.wire import str_to_ucs2


class HeaderType(enum.IntEnum):
    """Stream header types."""

    QUERY_NOTIFICATION = 1
    TRANSACTION_DESCRIPTOR = 2
    TRACE_ACTIVITY = 3


@dataclass(frozen=True)
class Header:
    """One stream header: its type and already packed data."""

    header_type: int
    data: bytes


@dataclass(frozen=True)
class QueryNotificationHeader:
    """Query notifications header."""

    notify_id: str
    ssb_deployment: str
    notify_timeout: int

    def pack(self) -> bytes:
        notify_id = str_to_ucs2(self.notify_id)
        ssb_deployment = str_to_ucs2(self.ssb_deployment)
        return b"".join(
            (
                struct.pack("<H", len(notify_id)),
                notify_id,
                struct.pack("<H", len(ssb_deployment)),
                ssb_deployment,
                struct.pack("<I", self.notify_timeout),
            )
        )


@dataclass(frozen=True)
class TransactionDescriptorHeader:
    """MARS transaction descriptor header."""

    transaction_descriptor: int
    outstanding_request_count: int

    def pack(self) -> bytes:
        return struct.pack(
            "<QI", self.transaction_descriptor, self.outstanding_request_count
        )


def encode_all_headers(headers: Iterable[Header]) -> bytes:
    """Encode the ALL_HEADERS block: total length followed by each header."""
    headers = list(headers)
    total_length = 4 + sum(4 + 2 + len(header.data) for header in headers)
    parts = [struct.pack("<I", total_length)]
    for header in headers:
        parts.append(struct.pack("<IH", 4 + 2 + len(header.data), header.header_type))
        parts.append(bytes(header.data))
    return b"".join(parts)


def encode_sql_batch(sqltext: str, headers: Iterable[Header]) -> bytes:
    """Build the payload of a SQL batch packet."""
    return encode_all_headers(headers) + str_to_ucs2(sqltext)