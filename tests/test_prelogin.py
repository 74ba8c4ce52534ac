import pytest

from tdsproto.login import FedAuthExtension, FedAuthLibrary
from tdsproto.prelogin import (
    EncryptMode,
    PreloginError,
    PreloginField,
    decode_prelogin,
    encode_prelogin,
    interpret_prelogin_response,
    parse_instances,
    prepare_prelogin_fields,
)


def test_encode_single_field_wire_bytes():
    payload = encode_prelogin({PreloginField.ENCRYPTION: bytes([EncryptMode.ON])})
    assert payload == b"\x01\x00\x06\x00\x01\xff\x01"


def test_encode_sorts_options_and_terminates_table():
    fields = prepare_prelogin_fields("INST", False, False, None)
    payload = encode_prelogin(dict(reversed(list(fields.items()))))
    assert payload[0] == PreloginField.VERSION
    assert payload[5 * len(fields)] == PreloginField.TERMINATOR
    types = [payload[5 * i] for i in range(len(fields))]
    assert types == sorted(fields)


def test_round_trip():
    fed_auth = FedAuthExtension(library=FedAuthLibrary.SECURITY_TOKEN)
    fields = prepare_prelogin_fields("SQLEXPRESS", True, False, fed_auth)
    assert decode_prelogin(encode_prelogin(fields)) == fields


def test_decode_terminator_only():
    assert decode_prelogin(bytes([PreloginField.TERMINATOR])) == {}


def test_decode_empty_raises():
    with pytest.raises(PreloginError):
        decode_prelogin(b"")


def test_decode_missing_terminator_raises():
    payload = encode_prelogin({PreloginField.MARS: b"\x00"})
    without_terminator = payload[:5]
    with pytest.raises(PreloginError):
        decode_prelogin(without_terminator)


def test_decode_value_out_of_range_raises():
    payload = encode_prelogin({PreloginField.THREADID: bytes(4)})
    with pytest.raises(PreloginError):
        decode_prelogin(payload[:-1])


@pytest.mark.parametrize(
    "encrypt, disable, expected",
    [
        (False, False, EncryptMode.OFF),
        (True, False, EncryptMode.ON),
        (True, True, EncryptMode.NOT_SUPPORTED),
        (False, True, EncryptMode.NOT_SUPPORTED),
    ],
)
def test_prepare_encryption_mode(encrypt, disable, expected):
    fields = prepare_prelogin_fields("", encrypt, disable, None)
    assert fields[PreloginField.ENCRYPTION] == bytes([expected])


def test_prepare_instance_is_zero_terminated():
    fields = prepare_prelogin_fields("INST", False, False, None)
    assert fields[PreloginField.INSTOPT] == b"INST\x00"
    assert fields[PreloginField.MARS] == b"\x00"


def test_prepare_fed_auth_flag_only_with_library():
    plain = prepare_prelogin_fields("", False, False, FedAuthExtension())
    assert PreloginField.FED_AUTH_REQUIRED not in plain
    fed = prepare_prelogin_fields(
        "", False, False, FedAuthExtension(library=FedAuthLibrary.ADAL)
    )
    assert fed[PreloginField.FED_AUTH_REQUIRED] == b"\x01"


def test_interpret_returns_server_mode():
    fields = {PreloginField.ENCRYPTION: bytes([EncryptMode.REQUIRED])}
    assert interpret_prelogin_response(fields, True, None) == EncryptMode.REQUIRED


@pytest.mark.parametrize("flag, echo", [(b"\x01", True), (b"\x00", False)])
def test_interpret_sets_echo(flag, echo):
    fed_auth = FedAuthExtension(library=FedAuthLibrary.SECURITY_TOKEN)
    fields = {
        PreloginField.ENCRYPTION: bytes([EncryptMode.OFF]),
        PreloginField.FED_AUTH_REQUIRED: flag,
    }
    assert interpret_prelogin_response(fields, False, fed_auth) == EncryptMode.OFF
    assert fed_auth.echo is echo


def test_interpret_bad_fed_auth_length():
    fields = {
        PreloginField.ENCRYPTION: bytes([EncryptMode.OFF]),
        PreloginField.FED_AUTH_REQUIRED: b"\x01\x01",
    }
    with pytest.raises(PreloginError, match="length should be 1"):
        interpret_prelogin_response(fields, False, FedAuthExtension())


def test_interpret_fed_auth_unsupported_by_server():
    fed_auth = FedAuthExtension(library=FedAuthLibrary.ADAL)
    fields = {PreloginField.ENCRYPTION: bytes([EncryptMode.OFF])}
    with pytest.raises(PreloginError, match="not supported"):
        interpret_prelogin_response(fields, False, fed_auth)


def test_interpret_missing_encryption():
    with pytest.raises(PreloginError, match="encrypt negotiation failed"):
        interpret_prelogin_response({}, False, None)


@pytest.mark.parametrize("mode", [EncryptMode.OFF, EncryptMode.NOT_SUPPORTED])
def test_interpret_encryption_refused(mode):
    fields = {PreloginField.ENCRYPTION: bytes([mode])}
    with pytest.raises(PreloginError, match="does not support encryption"):
        interpret_prelogin_response(fields, True, None)


def test_parse_instances_two_instances():
    body = (
        "ServerName;HOST;InstanceName;sqlexpress;tcp;1433;;"
        "ServerName;HOST;InstanceName;Other;tcp;1500;;"
    )
    result = parse_instances(b"\x05\x00\x00" + body.encode())
    assert set(result) == {"SQLEXPRESS", "OTHER"}
    assert result["SQLEXPRESS"]["tcp"] == "1433"
    assert result["OTHER"]["InstanceName"] == "Other"


def test_parse_instances_rejects_other_messages():
    body = b"InstanceName;x;tcp;1;;"
    assert parse_instances(b"\x04\x00\x00" + body) == {}
    assert parse_instances(b"\x05\x00\x00") == {}