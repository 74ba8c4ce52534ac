import io
import struct

import pytest

from tdsproto.headers import (
    Header,
    HeaderType,
    TransactionDescriptorHeader,
    encode_all_headers,
)
from tdsproto.tran import (
    BEGIN_XACT_FLAG,
    IsolationLevel,
    TransactionRequest,
    encode_begin_xact,
    encode_commit_xact,
    encode_rollback_xact,
)
from tdsproto.wire import WireError, read_b_varchar, read_byte, read_ushort

HEADERS = [
    Header(HeaderType.TRANSACTION_DESCRIPTOR, TransactionDescriptorHeader(0, 1).pack())
]


def _body(payload):
    prefix = encode_all_headers(HEADERS)
    assert payload.startswith(prefix)
    return io.BytesIO(payload[len(prefix):])


def test_begin_xact_layout():
    stream = _body(encode_begin_xact(HEADERS, IsolationLevel.SERIALIZABLE, "tx1"))
    assert read_ushort(stream) == TransactionRequest.BEGIN_XACT
    assert read_byte(stream) == IsolationLevel.SERIALIZABLE
    assert read_b_varchar(stream) == "tx1"
    assert stream.read() == b""


def test_begin_xact_unnamed():
    stream = _body(encode_begin_xact(HEADERS, IsolationLevel.READ_COMMITTED, ""))
    assert read_ushort(stream) == TransactionRequest.BEGIN_XACT
    assert read_byte(stream) == IsolationLevel.READ_COMMITTED
    assert read_b_varchar(stream) == ""
    assert stream.read() == b""


@pytest.mark.parametrize(
    "encoder, request_type",
    [
        (encode_commit_xact, TransactionRequest.COMMIT_XACT),
        (encode_rollback_xact, TransactionRequest.ROLLBACK_XACT),
    ],
)
def test_end_xact_without_begin(encoder, request_type):
    stream = _body(encoder(HEADERS, "tx1", 0, IsolationLevel.SNAPSHOT, "tx2"))
    assert read_ushort(stream) == request_type
    assert read_b_varchar(stream) == "tx1"
    assert read_byte(stream) == 0
    assert stream.read() == b""


@pytest.mark.parametrize(
    "encoder, request_type",
    [
        (encode_commit_xact, TransactionRequest.COMMIT_XACT),
        (encode_rollback_xact, TransactionRequest.ROLLBACK_XACT),
    ],
)
def test_end_xact_with_begin(encoder, request_type):
    stream = _body(
        encoder(HEADERS, "tx1", BEGIN_XACT_FLAG, IsolationLevel.REPEATABLE_READ, "tx2")
    )
    assert read_ushort(stream) == request_type
    assert read_b_varchar(stream) == "tx1"
    assert read_byte(stream) == BEGIN_XACT_FLAG
    assert read_byte(stream) == IsolationLevel.REPEATABLE_READ
    assert read_b_varchar(stream) == "tx1"
    assert stream.read() == b""


def test_no_headers_block_still_present():
    payload = encode_begin_xact([], IsolationLevel.USE_CURRENT, "")
    assert struct.unpack("<I", payload[:4])[0] == len(encode_all_headers([]))


def test_name_too_long():
    with pytest.raises(WireError):
        encode_begin_xact(HEADERS, IsolationLevel.USE_CURRENT, "n" * 256)